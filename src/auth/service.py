from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from loguru import logger
from src.models import User
from src.auth.schemas import UserCreate
from src.auth.utils import get_password_hash, verify_password
from src.exceptions import ConflictError
from typing import Optional

class UserService:
    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def create_user(db: Session, user: UserCreate, role: str = "user") -> User:
        """Create a new user"""
        db_user = User(
            name=user.name,
            email=user.email.lower(),
            phone=user.phone,
            password=get_password_hash(user.password),
            role=role
        )

        try:
            db.add(db_user)
            db.commit()
            db.refresh(db_user)
        except IntegrityError:
            db.rollback()
            raise ConflictError("Email already registered", code="EMAIL_TAKEN")

        logger.info(f"Registered user {db_user.id} ({db_user.role})")
        return db_user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password"""
        user = UserService.get_user_by_email(db, email)
        if not user:
            return None
        if not verify_password(password, user.password):
            return None
        return user
