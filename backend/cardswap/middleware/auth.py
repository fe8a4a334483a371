"""JWT authentication dependencies.

Tokens are issued by the identity service; this module only verifies them.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from cardswap import errors
from cardswap.config import settings
from cardswap.database import get_db
from cardswap.models.enums import UserRole
from cardswap.models.user import User

security = HTTPBearer()


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_guardian(current_user: User = Depends(get_current_user)) -> User:
    """Guardian role with completed KYC."""
    if current_user.role != UserRole.GUARDIAN:
        raise errors.forbidden("only guardians can perform this action")
    if not current_user.is_kyc_verified:
        raise errors.forbidden("guardian must complete KYC before performing this action")
    return current_user
