import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursework.core.config import settings
from coursework.core.current_user import get_current_user
from coursework.core.deps import get_db, get_fanout
from coursework.core.security import create_access_token, hash_password, verify_password
from coursework.models.user import ROLE_STAFF, ROLE_STUDENT, User
from coursework.schemas.auth import LoginRequest, Token
from coursework.schemas.user import UserCreate, UserRead
from coursework.services.notifications import EventKind, NotificationFanout, render_event

logger = logging.getLogger(__name__)

router = APIRouter()


def _is_valid_invite(code: str) -> bool:
    expected = settings.STAFF_INVITE_CODE
    return bool(expected) and secrets.compare_digest(code.encode(), expected.encode())


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Email already registered"},
        403: {"description": "Invalid invitation code"},
    },
)
def register(
    payload: UserCreate,
    db: Session = Depends(get_db),
    fanout: NotificationFanout = Depends(get_fanout),
):
    is_staff = payload.invite_code is not None
    if is_staff and not _is_valid_invite(payload.invite_code):
        logger.info("staff registration for %s refused: bad invitation code", payload.email)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid invitation code",
        )

    # students start unapproved; staff approve them from /students
    user = User(
        email=payload.email,
        full_name=payload.full_name,
        hashed_password=hash_password(payload.password),
        role=ROLE_STAFF if is_staff else ROLE_STUDENT,
        approved=is_staff,
        muted=False,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )
    db.refresh(user)

    if is_staff:
        logger.info("staff account %s registered", user.email)
        return user

    fanout.try_emit(
        EventKind.REGISTRATION_PENDING,
        user.email,
        render_event(EventKind.REGISTRATION_PENDING, name=user.full_name),
        event_key=f"{EventKind.REGISTRATION_PENDING.value}:{user.id}",
    )
    return user


@router.post(
    "/login",
    response_model=Token,
    responses={
        401: {"description": "Invalid email or password"},
    },
)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role},
        expires_delta=settings.access_token_expire,
    )
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_user)):
    return current_user
