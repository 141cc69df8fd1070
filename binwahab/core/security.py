import hashlib
import hmac
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from binwahab.core.config import settings

logger = logging.getLogger(__name__)


class SecurityUtils:

    # ---------------- Password ----------------
    @staticmethod
    def hash_password(password: str) -> str:
        """
        SHA256 + bcrypt password hashing.
        Returns safe ASCII string (fits String(255))
        """
        sha = hashlib.sha256(password.encode("utf-8")).digest()
        hashed = bcrypt.hashpw(sha, bcrypt.gensalt())
        return hashed.decode()

    @staticmethod
    def verify_password(password: str, stored_hash: str) -> bool:
        sha = hashlib.sha256(password.encode("utf-8")).digest()
        try:
            return bcrypt.checkpw(sha, stored_hash.encode())
        except ValueError:
            logger.warning("Malformed password hash encountered")
            return False

    # ---------------- JWT ----------------
    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> tuple[str, datetime]:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({
            "exp": expire,
            "iat": datetime.now(timezone.utc),
            "jti": str(uuid.uuid4()),
            "type": "access",
        })
        token = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return token, expire

    @staticmethod
    def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
            if payload.get("type") != "access": return None
            return payload
        except JWTError:
            return None

    # ---------------- HMAC ----------------
    @staticmethod
    def generate_hmac_signature(secret: str, message: bytes | str) -> str:
        if isinstance(message, str):
            message = message.encode("utf-8")
        return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    @staticmethod
    def verify_hmac_signature(secret: str, message: bytes | str, signature: Optional[str]) -> bool:
        """Constant-time check; an empty secret or signature never verifies."""
        if not secret or not signature:
            return False
        expected = SecurityUtils.generate_hmac_signature(secret, message)
        return hmac.compare_digest(expected.encode(), signature.strip().lower().encode("utf-8"))
