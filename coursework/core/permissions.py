from fastapi import Depends, HTTPException, status

from coursework.core.current_user import get_current_user
from coursework.models.user import ROLE_STAFF, ROLE_STUDENT, User


def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_STAFF:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Teaching staff role required",
        )
    return current_user


def require_student(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_STUDENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student role required",
        )
    return current_user
