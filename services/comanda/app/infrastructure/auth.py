from datetime import datetime, timedelta, timezone
import jwt
from typing import Optional
from app.core_settings import get_settings

settings = get_settings()

def create_access_token(user_id: str, establishment_id: Optional[str], expires_minutes: int = 60) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    if establishment_id:
        payload["establishment_id"] = establishment_id
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None
