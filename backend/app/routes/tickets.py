from __future__ import annotations
from flask import Blueprint, request, g
from sqlalchemy import select, case
from app.decorators.auth import require_permissions
from app.utils.listing import apply_pagination, make_list_response
from app.utils.validation import json_object
from app.utils.sorting import apply_sort
from app import get_db
from app.models.ticket import Ticket, TicketNote
from app.serializers import ticket_json, status_log_json, note_json
from app.services import tickets as ticket_service
from app.services.status_log import status_history

tickets_bp = Blueprint('tickets', __name__)

PRIORITY_RANK = case(
    {Ticket.PRIORITY_LOW: 0, Ticket.PRIORITY_MEDIUM: 1, Ticket.PRIORITY_HIGH: 2, Ticket.PRIORITY_URGENT: 3},
    value=Ticket.priority,
    else_=1,
)


@tickets_bp.get('')
@require_permissions('TICKET.READ')
def list_tickets():
    q = ticket_service.list_tickets(g.identity, request.args)
    allowed = {
        'created_at': Ticket.created_at,
        'updated_at': Ticket.updated_at,
        'priority': PRIORITY_RANK,
        'status': Ticket.status,
    }
    q = apply_sort(q, request.args.get('sort_by'), request.args.get('sort_order'), allowed, 'created_at', Ticket.id)
    paged_q, total, page, page_size = apply_pagination(q)
    return make_list_response([ticket_json(t) for t in paged_q.all()], total, page, page_size)


@tickets_bp.post('')
@require_permissions('TICKET.MANAGE')
def create_ticket():
    t = ticket_service.create_ticket(g.identity, json_object(request.json))
    return ticket_json(t), 201


@tickets_bp.get('/<int:ticket_id>')
@require_permissions('TICKET.READ')
def get_ticket(ticket_id: int):
    session = get_db()
    t = ticket_service.get_ticket(g.identity, ticket_id)
    notes = session.execute(
        select(TicketNote).where(TicketNote.ticket_id==t.id).order_by(TicketNote.id.desc())
    ).scalars().all()
    return {
        **ticket_json(t),
        'status_logs': [status_log_json(log) for log in status_history(session, t.id)],
        'notes': [note_json(n) for n in notes],
    }


@tickets_bp.patch('/<int:ticket_id>')
@require_permissions('TICKET.MANAGE')
def update_ticket(ticket_id: int):
    t = ticket_service.update_ticket(g.identity, ticket_id, json_object(request.json))
    return ticket_json(t)


@tickets_bp.post('/<int:ticket_id>/status')
@require_permissions('TICKET.MANAGE')
def change_status(ticket_id: int):
    data = json_object(request.json)
    t = ticket_service.change_status(g.identity, ticket_id, data.get('status'), data.get('note'))
    return ticket_json(t)


@tickets_bp.post('/<int:ticket_id>/assign')
@require_permissions('TICKET.ASSIGN')
def assign_ticket(ticket_id: int):
    data = json_object(request.json)
    t = ticket_service.assign_ticket(g.identity, ticket_id, data.get('assigned_to_id'))
    return ticket_json(t)


@tickets_bp.post('/<int:ticket_id>/notes')
@require_permissions('TICKET.MANAGE')
def add_note(ticket_id: int):
    data = json_object(request.json)
    n = ticket_service.add_note(g.identity, ticket_id, data.get('content'), data.get('is_ai_generated', False))
    return note_json(n), 201


@tickets_bp.get('/<int:ticket_id>/status-logs')
@require_permissions('TICKET.READ')
def list_status_logs(ticket_id: int):
    session = get_db()
    t = ticket_service.get_ticket(g.identity, ticket_id)
    newest_first = (request.args.get('order') or 'desc').lower() != 'asc'
    return {'data': [status_log_json(log) for log in status_history(session, t.id, newest_first)]}
