from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
import uuid

from models import User, ROLE_SHOPKEEPER
import services.config as config

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")
pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)

async def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    cred_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        if payload.get("type") != "access":
            raise cred_exc
        user_id = uuid.UUID(payload.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise cred_exc
    user = await User.get_or_none(id=user_id)
    if not user:
        raise cred_exc
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated. Please contact admin.")
    return user

async def get_current_admin_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return user

async def get_current_shopkeeper(user: User = Depends(get_current_user)) -> User:
    if user.role != ROLE_SHOPKEEPER:
        raise HTTPException(status_code=403, detail="Shopkeeper access required")
    return user

def require_feature(*keys: str):
    """Shopkeeper dependency that passes when any of the given features is enabled."""
    async def _dep(user: User = Depends(get_current_shopkeeper)) -> User:
        if not any(user.has_feature(k) for k in keys):
            raise HTTPException(status_code=403, detail=f"Feature not enabled: {' / '.join(keys)}")
        return user
    return _dep
