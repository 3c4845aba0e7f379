from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from src.config import settings
from src.database import get_db
from src.auth.utils import verify_token
from src.auth.service import UserService
from src.exceptions import AuthenticationError, ForbiddenError
from src.models import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False)

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """Get current authenticated user"""
    if not token:
        raise AuthenticationError("Not authenticated")

    token_data = verify_token(token)

    user = UserService.get_user_by_id(db, user_id=token_data["user_id"])
    if user is None:
        raise AuthenticationError("Could not validate credentials", code="INVALID_TOKEN")

    return user

def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Require admin role for access"""
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required", code="ADMIN_REQUIRED")
    return current_user
