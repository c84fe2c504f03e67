import os
import logging
import jwt
from typing import Dict, Optional, Any
from datetime import datetime, timezone, timedelta

logger = logging.getLogger(__name__)

_DEV_SECRET = "dev-secret-do-not-use-in-prod"


def _get_secret() -> str:
    secret = os.getenv("APP_SECRET", "")
    if secret and secret != _DEV_SECRET:
        return secret
    if os.getenv("TESTING", "").lower() in ("1", "true", "yes"):
        return "test-secret-key-do-not-use-in-prod"
    logger.warning("APP_SECRET is not set; admin tokens are signed with an insecure dev key.")
    return _DEV_SECRET


def create_token(admin_id: int, role: str, expires_minutes: int = 720) -> str:
    """Sign an admin JWT (default lifetime 12h)."""
    now = datetime.now(timezone.utc)
    data = {"sub": str(admin_id), "role": role, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    return jwt.encode(data, _get_secret(), algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode an admin JWT. Returns None if it is invalid or expired."""
    try:
        data = jwt.decode(token, _get_secret(), algorithms=["HS256"])
    except jwt.PyJWTError:
        return None
    try:
        admin_id = int(data["sub"])
    except (KeyError, TypeError, ValueError):
        return None
    return {"admin_id": admin_id, "role": str(data.get("role", "admin"))}
