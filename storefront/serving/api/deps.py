"""
Request Dependencies

Bearer-token authentication, cart session lookup and the payment gateway,
injected into the route handlers with FastAPI's Depends(). Access tokens are
issued by the account service; this service only verifies them.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from storefront.config import Settings, get_settings
from storefront.database.models import UserRole
from storefront.errors import AuthorizationError
from storefront.services.payment import PaymentGateway, SnapPaymentGateway

bearer_scheme = HTTPBearer(auto_error=False)

AUTH_COOKIE = "token"
SESSION_HEADER = "X-Session-ID"
SESSION_COOKIE = "session_id"

ADMIN_ROLES = {UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value}


class CurrentUser(BaseModel):
    id: UUID
    role: str = UserRole.USER.value

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def decode_access_token(token: str, settings: Settings) -> CurrentUser:
    try:
        payload = jwt.decode(
            token,
            settings.security.jwt_secret_key.get_secret_value(),
            algorithms=[settings.security.jwt_algorithm],
        )
        subject = payload.get("sub")
        if subject is None:
            raise AuthorizationError("Could not validate credentials")
        return CurrentUser(id=UUID(subject), role=payload.get("role") or UserRole.USER.value)
    except (JWTError, ValueError):
        raise AuthorizationError("Could not validate credentials")


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    """Caller from the bearer token, or else from the `token` cookie."""
    token = credentials.credentials if credentials else request.cookies.get(AUTH_COOKIE)
    if not token:
        raise AuthorizationError("Authentication required")
    return decode_access_token(token, settings)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Optional[CurrentUser]:
    token = credentials.credentials if credentials else request.cookies.get(AUTH_COOKIE)
    if not token:
        return None
    return decode_access_token(token, settings)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise AuthorizationError("Admin access required", status_code=403)
    return user


def get_session_id(request: Request) -> Optional[str]:
    return request.headers.get(SESSION_HEADER) or request.cookies.get(SESSION_COOKIE)


def get_payment_gateway(request: Request) -> PaymentGateway:
    """Gateway stored on app.state, created on first use."""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway = SnapPaymentGateway(get_settings().payment)
        request.app.state.payment_gateway = gateway
    return gateway
