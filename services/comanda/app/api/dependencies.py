from dataclasses import dataclass
from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker
from shared.core import set_request_context
from app.application.audit_service import AuditLogService
from app.domain.errors import ForbiddenError, UnauthorizedError
from app.infrastructure.auth import decode_access_token
from app.infrastructure.db import get_session_factory
from app.infrastructure.notifications import NotificationBus

BEARER_PREFIX = "Bearer "

@dataclass(frozen=True)
class Actor:
    """Authenticated caller and the establishment every query is scoped to."""
    user_id: str
    establishment_id: str

async def get_actor(request: Request) -> Actor:
    # EventSource cannot send headers, so the stream passes ?token=
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith(BEARER_PREFIX):
        token = auth_header[len(BEARER_PREFIX):].strip()
    else:
        token = request.query_params.get("token")
    if not token:
        raise UnauthorizedError("Missing token")

    claims = decode_access_token(token)
    if not claims or not claims.get("sub"):
        raise UnauthorizedError("Invalid token")
    establishment_id = claims.get("establishment_id")
    if not establishment_id:
        raise ForbiddenError("Token is not scoped to an establishment")

    set_request_context(user_id=claims["sub"])
    return Actor(user_id=claims["sub"], establishment_id=establishment_id)

def get_notification_bus(request: Request) -> NotificationBus:
    return request.app.state.notifications

def get_audit_service(session_factory: sessionmaker = Depends(get_session_factory)) -> AuditLogService:
    return AuditLogService(session_factory)
