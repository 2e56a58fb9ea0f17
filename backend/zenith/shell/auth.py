"""API-key authentication for Zenith operators.

An operator registers with an email and receives a `zen_` key exactly once.
Only the key's digest is persisted; the digest doubles as the operator's
user_id and as the Firestore document ID under `users/`.
"""

import hashlib
import logging
import secrets
from datetime import datetime

from google.cloud import firestore

from ..core.dates import DEFAULT_TIMEZONE
from ..core.models import User


logger = logging.getLogger(__name__)

API_KEY_PREFIX = "zen_"
KEY_ENTROPY_BYTES = 32
MIN_KEY_LENGTH = 40
USER_ID_LENGTH = 32
USERS_COLLECTION = "users"
BEARER_SCHEME = "Bearer "


def generate_api_key() -> str:
    """Create a new random operator key, e.g. ``zen_Xk3...``."""
    return API_KEY_PREFIX + secrets.token_urlsafe(KEY_ENTROPY_BYTES)


def hash_api_key(api_key: str) -> str:
    """Derive the user_id for a key.

    SHA256 hex digest cut to 32 characters, short enough for a Firestore
    document ID and stable across restarts.
    """
    digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()
    return digest[:USER_ID_LENGTH]


def validate_api_key_format(api_key: str | None) -> bool:
    """Cheap shape check done before any Firestore lookup."""
    return bool(api_key) and api_key.startswith(API_KEY_PREFIX) and len(api_key) >= MIN_KEY_LENGTH


def extract_bearer_key(auth_header: str) -> str | None:
    """Return the key from ``Authorization: Bearer <key>``, or None if malformed."""
    scheme, _, credential = auth_header.partition(" ")
    if f"{scheme} " != BEARER_SCHEME:
        return None
    credential = credential.strip()
    if not validate_api_key_format(credential):
        return None
    return credential


class AuthClient:
    """Operator registry stored in the `users` collection."""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def _user_doc(self, user_id: str) -> firestore.DocumentReference:
        return self._db.collection(USERS_COLLECTION).document(user_id)

    def register_user(self, email: str, timezone: str = DEFAULT_TIMEZONE) -> tuple[str, str]:
        """Enroll an operator.

        Args:
            email: Contact address for the operator
            timezone: IANA zone the operator keeps their calendar in

        Returns:
            (api_key, user_id). The plaintext key is not recoverable later.

        Raises:
            Any Firestore error; the HTTP layer turns it into a 500.
        """
        api_key = generate_api_key()
        user_id = hash_api_key(api_key)
        record = User(email=email, api_key_hash=user_id, timezone=timezone, created_at=datetime.utcnow())

        self._user_doc(user_id).set(record.model_dump())
        logger.info("Enrolled operator %s", user_id[:8])
        return api_key, user_id

    def validate_api_key(self, api_key: str) -> str | None:
        """Resolve a key to its user_id when it is well-formed and registered."""
        if not validate_api_key_format(api_key):
            logger.warning("Rejected malformed API key")
            return None

        user_id = hash_api_key(api_key)
        if not self.user_exists(user_id):
            logger.warning("Rejected unknown API key %s", user_id[:8])
            return None
        return user_id

    def get_user(self, user_id: str) -> User | None:
        """Load an operator record, or None if absent or unreadable."""
        try:
            snapshot = self._user_doc(user_id).get()
        except Exception as e:
            logger.error("Failed to read operator %s: %s", user_id[:8], e)
            return None
        if not snapshot.exists:
            return None
        return User(**snapshot.to_dict())

    def user_exists(self, user_id: str) -> bool:
        try:
            return bool(self._user_doc(user_id).get().exists)
        except Exception as e:
            logger.error("Failed to check operator %s: %s", user_id[:8], e)
            return False

    def set_timezone(self, user_id: str, timezone: str) -> bool:
        """Change the zone an operator's days and alarms are computed in."""
        try:
            self._user_doc(user_id).update({"timezone": timezone})
            return True
        except Exception as e:
            logger.error("Failed to update timezone of %s: %s", user_id[:8], e)
            return False
