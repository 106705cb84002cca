"""FastAPI dependencies shared by the routers."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .center import CommandCenter
from .exceptions import AuthenticationError
from .tracker.user import User

bearer_scheme = HTTPBearer(auto_error=False)


def get_center(request: Request) -> CommandCenter:
    """Return the application's CommandCenter."""
    return request.app.state.center


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    center: CommandCenter = Depends(get_center),
) -> User:
    """Resolve the bearer token to a user, or fail with 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Missing bearer token")
    return center.auth.resolve_token(credentials.credentials)
