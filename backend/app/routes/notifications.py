from __future__ import annotations
from flask import Blueprint, request, g
from sqlalchemy import select
from app import get_db
from app.decorators.auth import require_permissions
from app.errors import NotFoundError
from app.models.notification import Notification
from app.models.ticket import utcnow
from app.serializers import notification_json
from app.utils.listing import apply_pagination, make_list_response

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.get('')
@require_permissions()
def list_notifications():
    session = get_db()
    q = session.query(Notification).filter(
        Notification.organization_id==g.identity.organization_id,
        Notification.user_id==g.identity.user_id,
    )
    if (request.args.get('unread') or '').lower() in ('1', 'true', 'yes'):
        q = q.filter(Notification.read_at.is_(None))
    q = q.order_by(Notification.id.desc())
    paged_q, total, page, page_size = apply_pagination(q)
    return make_list_response([notification_json(n) for n in paged_q.all()], total, page, page_size)


@notifications_bp.post('/<int:notification_id>/read')
@require_permissions()
def mark_read(notification_id: int):
    session = get_db()
    n = session.execute(
        select(Notification).where(
            Notification.id==notification_id,
            Notification.organization_id==g.identity.organization_id,
            Notification.user_id==g.identity.user_id,
        )
    ).scalar_one_or_none()
    if not n:
        raise NotFoundError('Notification not found')
    if n.read_at is None:
        n.read_at = utcnow()
        session.commit()
    return notification_json(n)
