from __future__ import annotations
import logging
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from app import get_db
from app.models.notification import Notification
from app.serializers import notification_json
from app.services.realtime import publish, user_room, EVENT_NOTIFICATION_NEW

logger = logging.getLogger(__name__)


def enqueue_notification(organization_id: int, user_id: int, type: str, title: str, body: str, link: Optional[str] = None) -> Optional[Notification]:
    """Persist an in-app notification and push it to the recipient's sockets.

    Runs in its own commit after the caller's state change. Failures are
    logged and swallowed; the return value is informational only.
    """
    session = get_db()
    notification = Notification(
        organization_id=organization_id,
        user_id=user_id,
        type=type,
        title=title,
        body=body,
        link=link,
    )
    try:
        session.add(notification)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('notification %s for user %s dropped', type, user_id)
        return None
    publish(user_room(user_id), EVENT_NOTIFICATION_NEW, notification_json(notification))
    return notification
