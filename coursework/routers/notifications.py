from fastapi import APIRouter, Depends

from coursework.core.current_user import get_current_user
from coursework.core.deps import get_fanout
from coursework.models.user import User
from coursework.schemas.notification import NotificationRead
from coursework.services.notifications import NotificationFanout

router = APIRouter()


@router.get("", response_model=list[NotificationRead])
def my_notifications(
    unread_only: bool = False,
    fanout: NotificationFanout = Depends(get_fanout),
    me: User = Depends(get_current_user),
):
    return fanout.list_for(me.email, unread_only=unread_only)


@router.put("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: int,
    fanout: NotificationFanout = Depends(get_fanout),
    me: User = Depends(get_current_user),
):
    # other users' notifications look the same as missing ones
    return fanout.mark_read(notification_id, recipient_email=me.email)
