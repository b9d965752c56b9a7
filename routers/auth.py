from fastapi import APIRouter, Depends, HTTPException
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
import logging
import uuid

from models import User
from schemas import (
    Token, LoginRequest, LoginResponse, RefreshRequest, ChangePasswordRequest, UserRead, ProfileUpdate,
)
from deps import get_current_user, pwd_ctx
import services.config as config

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("uvicorn")

ACCESS_EXPIRE = config.ACCESS_EXPIRE_MINUTES * 60
REFRESH_EXPIRE = config.REFRESH_EXPIRE_DAYS * 24 * 3600


def create_token(data: dict, secret: str, expires: int, token_type: str) -> str:
    to_encode = data.copy()
    to_encode["type"] = token_type
    to_encode["jti"] = uuid.uuid4().hex  # two logins in the same second still get distinct tokens
    to_encode["exp"] = datetime.now(tz=timezone.utc) + timedelta(seconds=expires)
    return jwt.encode(to_encode, secret, algorithm=config.ALGORITHM)


async def issue_tokens(user: User) -> Token:
    """New access/refresh pair; the refresh token replaces the stored one."""
    data = {"sub": str(user.id), "role": user.role}
    tokens = Token(
        access_token=create_token(data, config.SECRET_KEY, ACCESS_EXPIRE, "access"),
        refresh_token=create_token(data, config.REFRESH_SECRET, REFRESH_EXPIRE, "refresh"),
    )
    user.refresh_token = tokens.refresh_token
    await user.save(update_fields=["refresh_token", "updated_at"])
    return tokens


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest):
    user = await User.get_or_none(email=str(payload.email).lower())
    if not user or not pwd_ctx.verify(payload.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated. Please contact admin.")
    tokens = await issue_tokens(user)
    logger.info(f"[auth] login {user.email}")
    return LoginResponse(user=UserRead.model_validate(user), tokens=tokens)


@router.post("/refresh-token", response_model=Token)
async def refresh_token(payload: RefreshRequest):
    try:
        decoded = jwt.decode(payload.refresh_token, config.REFRESH_SECRET, algorithms=[config.ALGORITHM])
        if decoded.get("type") != "refresh":
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        user_id = uuid.UUID(decoded.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = await User.get_or_none(id=user_id)
    # rotation: only the most recently issued refresh token is accepted
    if not user or not user.is_active or user.refresh_token != payload.refresh_token:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return await issue_tokens(user)


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    current_user.refresh_token = None
    await current_user.save(update_fields=["refresh_token", "updated_at"])
    return {"message": "Logged out successfully"}


@router.post("/change-password")
async def change_password(payload: ChangePasswordRequest, current_user: User = Depends(get_current_user)):
    if not pwd_ctx.verify(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    current_user.hashed_password = pwd_ctx.hash(payload.new_password)
    current_user.refresh_token = None
    await current_user.save(update_fields=["hashed_password", "refresh_token", "updated_at"])
    return {"message": "Password changed successfully"}


@router.get("/profile", response_model=UserRead)
async def get_profile(current_user: User = Depends(get_current_user)):
    return UserRead.model_validate(current_user)


@router.put("/profile", response_model=UserRead)
async def update_profile(payload: ProfileUpdate, current_user: User = Depends(get_current_user)):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None or k != "name"}
    for field, value in changes.items():
        setattr(current_user, field, value)
    if changes:
        await current_user.save()
    return UserRead.model_validate(current_user)
