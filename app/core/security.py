from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from app.core.config import settings


def decode_access_token(token: str) -> str | None:
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        if payload.get("type") != "access":
            return None
        sub = payload.get("sub")
        return str(sub) if sub else None
    except JWTError:
        return None


def create_connect_state(account_id: int) -> str:
    """Signed OAuth `state` naming the account that started the calendar consent."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.connect_state_expire_minutes)
    to_encode = {"sub": str(account_id), "exp": expire, "type": "calendar_connect"}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_connect_state(state: str) -> int | None:
    try:
        payload = jwt.decode(
            state, settings.secret_key, algorithms=[settings.algorithm]
        )
    except JWTError:
        return None
    if payload.get("type") != "calendar_connect":
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
