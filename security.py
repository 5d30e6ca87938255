from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

import config
from errors import AuthError


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=10)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def create_token(admin: dict) -> str:
    payload = {
        "sub": str(admin.get("id")),
        "username": admin["username"],
        "role": admin.get("role", "admin"),
        "exp": datetime.now(timezone.utc) + timedelta(hours=config.TOKEN_TTL_HOURS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.PyJWTError as exc:
        raise AuthError("Invalid token") from exc
