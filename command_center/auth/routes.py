"""
Authentication API routes.

All endpoints are prefixed with /auth.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..center import CommandCenter
from ..dependencies import get_center, get_current_user
from ..tracker.user import User, UserLogin, UserRegister

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(
    data: UserRegister,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Create an account and return a token for it."""
    user = center.auth.register(data)
    return {
        "status": "success",
        "user": user.public_dict(),
        **center.auth.issue_token(user),
    }


@router.post("/login")
async def login(
    data: UserLogin,
    center: CommandCenter = Depends(get_center),
) -> Dict[str, Any]:
    """Exchange credentials for a bearer token."""
    return {"status": "success", **center.auth.login(data)}


@router.get("/me")
async def me(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return {"status": "success", "user": user.public_dict()}
