from __future__ import annotations
"""Real-time broadcast to connected dashboard clients.

Rooms:
  org:{id}     every socket of an organization (ticket list/board updates)
  user:{id}    a single user's sockets (notifications)
  ticket:{id}  sockets viewing one ticket (typing indicators)

Publishing is best-effort. State changes are committed before anything is
published here, and a failed emit is logged and dropped.
"""
import logging
from typing import Any
from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

socketio = SocketIO()

EVENT_TICKET_CREATED = 'ticket:created'
EVENT_TICKET_UPDATED = 'ticket:updated'
EVENT_TICKET_STATUS_CHANGED = 'ticket:status_changed'
EVENT_TICKET_ASSIGNED = 'ticket:assigned'
EVENT_TICKET_NOTE_ADDED = 'ticket:note_added'
EVENT_NOTIFICATION_NEW = 'notification:new'


def org_room(organization_id: int) -> str:
    return f'org:{organization_id}'


def user_room(user_id: int) -> str:
    return f'user:{user_id}'


def ticket_room(ticket_id: int) -> str:
    return f'ticket:{ticket_id}'


def publish(channel: str, event: str, payload: Any) -> bool:
    """Emit ``event`` to every socket in ``channel``. Never raises."""
    try:
        socketio.emit(event, payload, to=channel)
    except Exception:
        logger.exception('broadcast of %s to %s failed', event, channel)
        return False
    logger.debug('published %s to %s', event, channel)
    return True


__all__ = [
    'socketio', 'publish', 'org_room', 'user_room', 'ticket_room',
    'EVENT_TICKET_CREATED', 'EVENT_TICKET_UPDATED', 'EVENT_TICKET_STATUS_CHANGED',
    'EVENT_TICKET_ASSIGNED', 'EVENT_TICKET_NOTE_ADDED', 'EVENT_NOTIFICATION_NEW',
]
