from __future__ import annotations
import logging
from flask import request
from flask_jwt_extended import decode_token
from flask_socketio import join_room, leave_room, emit
from sqlalchemy import select
from app import get_db
from app.models.ticket import Ticket
from app.services.realtime import org_room, user_room, ticket_room

logger = logging.getLogger(__name__)

# sid -> (organization_id, user_id)
_connections = {}


def _token_from(auth):
    if isinstance(auth, dict) and auth.get('token'):
        return auth['token']
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header.split(' ', 1)[1]
    return None


def _ticket_in_org(ticket_id, organization_id) -> bool:
    try:
        ticket_id = int(ticket_id)
    except (TypeError, ValueError):
        return False
    found = get_db().execute(
        select(Ticket.id).where(Ticket.id == ticket_id, Ticket.organization_id == organization_id)
    ).scalar_one_or_none()
    return found is not None


def register_socket_handlers(socketio):
    @socketio.on('connect')
    def socket_connect(auth=None):
        token = _token_from(auth)
        if not token:
            logger.info('socket %s rejected: no token', request.sid)
            return False
        try:
            claims = decode_token(token)
        except Exception:
            logger.info('socket %s rejected: invalid token', request.sid)
            return False
        organization_id = claims.get('org_id')
        user_id = int(claims['sub'])
        if organization_id is None:
            return False
        _connections[request.sid] = (int(organization_id), user_id)
        join_room(org_room(organization_id))
        join_room(user_room(user_id))
        logger.info('socket %s joined %s', request.sid, org_room(organization_id))

    @socketio.on('disconnect')
    def socket_disconnect(*args):
        _connections.pop(request.sid, None)

    @socketio.on('ticket:join')
    def ticket_join(ticket_id):
        conn = _connections.get(request.sid)
        if not conn or not _ticket_in_org(ticket_id, conn[0]):
            return
        join_room(ticket_room(int(ticket_id)))

    @socketio.on('ticket:leave')
    def ticket_leave(ticket_id):
        try:
            leave_room(ticket_room(int(ticket_id)))
        except (TypeError, ValueError):
            return

    @socketio.on('typing:start')
    def typing_start(ticket_id):
        _relay_typing('typing:start', ticket_id)

    @socketio.on('typing:stop')
    def typing_stop(ticket_id):
        _relay_typing('typing:stop', ticket_id)


def _relay_typing(event, ticket_id):
    conn = _connections.get(request.sid)
    if not conn or not _ticket_in_org(ticket_id, conn[0]):
        return
    emit(event, {'user_id': conn[1], 'ticket_id': int(ticket_id)}, to=ticket_room(int(ticket_id)), include_self=False)
