from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from leaddesk.core.config import get_settings
from leaddesk.platform.security.errors import UnauthenticatedError


@dataclass
class AuthUser:
    sub: str


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header.replace("Bearer ", "", 1).strip() if auth_header.startswith("Bearer ") else ""


async def get_current_user(request: Request) -> AuthUser:
    """Verify the bearer JWT and return its subject. The role is never taken from the token."""

    token = _bearer_token(request)
    if not token:
        raise UnauthenticatedError("Missing bearer token")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise UnauthenticatedError("Invalid bearer token") from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise UnauthenticatedError("Token has no subject")
    return AuthUser(sub=subject)


def issue_token(subject: str) -> str:
    settings = get_settings()
    return jwt.encode({"sub": subject}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
