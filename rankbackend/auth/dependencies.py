import logging
from typing import Callable
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from rankbackend.database import get_db
from rankbackend.models.user import User, UserRole
from rankbackend.auth.jwt import verify_token

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_id_from_token(token: str) -> int:
    """The ``sub`` claim of a valid bearer token as a user id; 401 otherwise."""
    claims = verify_token(token)
    if claims is None:
        logger.info("Rejected invalid or expired token")
        raise _unauthorized()
    try:
        return int(claims["sub"])
    except (KeyError, ValueError, TypeError):
        logger.info("Rejected token without a usable subject")
        raise _unauthorized()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    user_id = user_id_from_token(token)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.info("Token for unknown user id %s", user_id)
        raise _unauthorized()
    return user


def require_role(*roles: UserRole) -> Callable[..., User]:
    """Dependency factory: the current user, provided their role is one of ``roles``."""
    allowed = {role.value for role in roles}

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role.value not in allowed:
            logger.info("User %s (%s) denied; needs one of %s",
                        current_user.id, current_user.role.value, sorted(allowed))
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions"
            )
        return current_user
    return role_checker


require_student = require_role(UserRole.STUDENT)
require_reviewer = require_role(UserRole.ADMIN, UserRole.MODERATOR)
require_admin = require_role(UserRole.ADMIN)
