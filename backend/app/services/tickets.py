from __future__ import annotations
"""Ticket lifecycle: creation, status transitions, assignment and edits.

Every status change goes through ``change_status`` so the ticket row and its
status-log entry are committed together. Broadcasts and notifications happen
only after the commit and can never undo it.
"""
import logging
from typing import Any, Dict
from flask import current_app
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from app import get_db
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.account import Organization, User
from app.models.customer import Customer, Device
from app.models.notification import Notification
from app.models.ticket import Ticket, TicketNote, utcnow
from app.serializers import ticket_json, note_json
from app.services.policy import Identity
from app.services.notifications import enqueue_notification
from app.services.realtime import (
    publish, org_room,
    EVENT_TICKET_CREATED, EVENT_TICKET_UPDATED, EVENT_TICKET_STATUS_CHANGED,
    EVENT_TICKET_ASSIGNED, EVENT_TICKET_NOTE_ADDED,
)
from app.services.status_log import append_status_log
from app.services.ticket_codes import next_ticket_code
from app.utils.fsm import TransitionValidator
from app.utils.validation import (
    validate_status, validate_choice, require_text, optional_text, parse_id, parse_money,
    parse_datetime, parse_tags, reject_unknown_fields,
)

logger = logging.getLogger(__name__)

MIN_ISSUE_DESCRIPTION_LENGTH = 10

PERMISSIVE_FSM = TransitionValidator(states=Ticket.ALL_STATUSES)

# Enforced only when ENFORCE_TICKET_TRANSITIONS is set
GUIDED_FSM = TransitionValidator({
    Ticket.STATUS_NEW: {Ticket.STATUS_CHECKED_IN, Ticket.STATUS_DIAGNOSING, Ticket.STATUS_CANCELLED},
    Ticket.STATUS_CHECKED_IN: {Ticket.STATUS_DIAGNOSING, Ticket.STATUS_CANCELLED},
    Ticket.STATUS_DIAGNOSING: {Ticket.STATUS_WAITING_APPROVAL, Ticket.STATUS_WAITING_PARTS, Ticket.STATUS_IN_REPAIR, Ticket.STATUS_CANCELLED},
    Ticket.STATUS_WAITING_APPROVAL: {Ticket.STATUS_WAITING_PARTS, Ticket.STATUS_IN_REPAIR, Ticket.STATUS_CANCELLED},
    Ticket.STATUS_WAITING_PARTS: {Ticket.STATUS_IN_REPAIR, Ticket.STATUS_CANCELLED},
    Ticket.STATUS_IN_REPAIR: {Ticket.STATUS_WAITING_PARTS, Ticket.STATUS_QUALITY_CHECK, Ticket.STATUS_REPAIRED, Ticket.STATUS_CANCELLED},
    Ticket.STATUS_QUALITY_CHECK: {Ticket.STATUS_IN_REPAIR, Ticket.STATUS_REPAIRED},
    Ticket.STATUS_REPAIRED: {Ticket.STATUS_READY_PICKUP, Ticket.STATUS_PICKED_UP},
    Ticket.STATUS_READY_PICKUP: {Ticket.STATUS_PICKED_UP, Ticket.STATUS_CLOSED},
    Ticket.STATUS_PICKED_UP: {Ticket.STATUS_CLOSED},
    Ticket.STATUS_CLOSED: set(),
    Ticket.STATUS_CANCELLED: {Ticket.STATUS_CLOSED},
})

UPDATABLE_FIELDS = (
    'priority', 'issue_description', 'ai_diagnosis', 'estimated_cost', 'approved_cost', 'actual_cost',
    'estimated_completion', 'tags',
)
# status has its own operation; the rest are owned by the system
PROTECTED_FIELDS = ('status', 'code', 'completed_at', 'assigned_to_id', 'organization_id', 'created_by', 'id')


def transition_validator() -> TransitionValidator:
    if current_app.config.get('ENFORCE_TICKET_TRANSITIONS'):
        return GUIDED_FSM
    return PERMISSIVE_FSM


def load_ticket(session, identity: Identity, ticket_id: int) -> Ticket:
    """Fetch a ticket of the caller's organization; other tenants' tickets look absent."""
    t = session.execute(
        select(Ticket).where(Ticket.id == ticket_id, Ticket.organization_id == identity.organization_id)
    ).scalar_one_or_none()
    if not t:
        raise NotFoundError('Ticket not found')
    return t


def get_ticket(identity: Identity, ticket_id: int) -> Ticket:
    return load_ticket(get_db(), identity, ticket_id)


def _require_member(session, identity: Identity, user_id: int, field_name: str) -> User:
    user = session.execute(
        select(User).where(User.id == user_id, User.organization_id == identity.organization_id, User.is_active.is_(True))
    ).scalar_one_or_none()
    if not user:
        raise ValidationError('User not found', details={field_name: ['not a member of this organization']})
    return user


def _notify_assignee(identity: Identity, ticket: Ticket):
    enqueue_notification(
        identity.organization_id,
        ticket.assigned_to_id,
        Notification.TYPE_TICKET_ASSIGNED,
        'Ticket assigned to you',
        f'Ticket {ticket.code} has been assigned to you',
        f'/tickets/{ticket.id}',
    )


def create_ticket(identity: Identity, data: Dict[str, Any]) -> Ticket:
    session = get_db()
    customer_id = parse_id(data.get('customer_id'), 'customer_id')
    device_id = parse_id(data.get('device_id'), 'device_id')
    assignee_id = parse_id(data.get('assigned_to_id'), 'assigned_to_id', required=False)
    priority = validate_choice(data.get('priority'), Ticket.ALL_PRIORITIES, 'priority', default=Ticket.PRIORITY_MEDIUM)
    channel = validate_choice(data.get('channel'), Ticket.ALL_CHANNELS, 'channel', default=Ticket.CHANNEL_WALK_IN)
    issue = require_text(data.get('issue_description'), 'issue_description', MIN_ISSUE_DESCRIPTION_LENGTH)
    estimated_completion = parse_datetime(data.get('estimated_completion'), 'estimated_completion')
    tags = parse_tags(data.get('tags'))

    customer = session.execute(
        select(Customer).where(Customer.id == customer_id, Customer.organization_id == identity.organization_id)
    ).scalar_one_or_none()
    if not customer:
        raise NotFoundError('Customer not found')
    device = session.execute(
        select(Device).where(
            Device.id == device_id,
            Device.customer_id == customer.id,
            Device.organization_id == identity.organization_id,
        )
    ).scalar_one_or_none()
    if not device:
        raise ValidationError('Device not found or does not belong to customer', details={'device_id': ['does not belong to customer']})
    if assignee_id is not None:
        _require_member(session, identity, assignee_id, 'assigned_to_id')

    org = session.get(Organization, identity.organization_id)
    default_prefix = current_app.config.get('TICKET_PREFIX', 'FX')
    prefix = org.ticket_prefix(default_prefix) if org else default_prefix
    code = next_ticket_code(session, identity.organization_id, prefix)

    ticket = Ticket(
        organization_id=identity.organization_id,
        code=code,
        customer_id=customer_id,
        device_id=device_id,
        assigned_to_id=assignee_id,
        created_by=identity.user_id,
        status=Ticket.STATUS_NEW,
        priority=priority,
        channel=channel,
        issue_description=issue,
        estimated_completion=estimated_completion,
        tags=tags,
        attachments=[],
    )
    session.add(ticket)
    try:
        session.flush()
        append_status_log(session, ticket, None, Ticket.STATUS_NEW, identity.user_id, 'Ticket created')
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning('ticket code %s already taken in org %s', code, identity.organization_id)
        raise ConflictError('Ticket code already in use, please retry')
    logger.info('ticket %s created in org %s', ticket.code, identity.organization_id)

    publish(org_room(identity.organization_id), EVENT_TICKET_CREATED, ticket_json(ticket))
    if assignee_id is not None:
        _notify_assignee(identity, ticket)
    return ticket


def change_status(identity: Identity, ticket_id: int, status: Any, note: Any = None) -> Ticket:
    session = get_db()
    target = validate_status(status, Ticket.ALL_STATUSES)
    note = optional_text(note, 'note')
    ticket = load_ticket(session, identity, ticket_id)
    previous = ticket.status
    transition_validator().assert_can_transition(previous, target)
    try:
        ticket.status = target
        if target in Ticket.COMPLETION_STATUSES:
            ticket.completed_at = utcnow()
        append_status_log(session, ticket, previous, target, identity.user_id, note)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    logger.info('ticket %s status %s -> %s by user %s', ticket.code, previous, target, identity.user_id)

    publish(org_room(identity.organization_id), EVENT_TICKET_STATUS_CHANGED, {
        'ticket': ticket_json(ticket),
        'from_status': previous,
        'to_status': target,
    })
    return ticket


def assign_ticket(identity: Identity, ticket_id: int, assignee_id: Any) -> Ticket:
    session = get_db()
    assignee_id = parse_id(assignee_id, 'assigned_to_id', required=False)
    ticket = load_ticket(session, identity, ticket_id)
    if assignee_id is not None:
        _require_member(session, identity, assignee_id, 'assigned_to_id')
    ticket.assigned_to_id = assignee_id
    session.commit()
    logger.info('ticket %s assigned to %s', ticket.code, assignee_id)

    if assignee_id is not None:
        _notify_assignee(identity, ticket)
    publish(org_room(identity.organization_id), EVENT_TICKET_ASSIGNED, ticket_json(ticket))
    return ticket


def update_ticket(identity: Identity, ticket_id: int, data: Dict[str, Any]) -> Ticket:
    """Edit non-status attributes. Status, code and completion time are not editable here."""
    session = get_db()
    reject_unknown_fields(data, UPDATABLE_FIELDS, forbidden=PROTECTED_FIELDS)
    changes: Dict[str, Any] = {}
    if 'priority' in data:
        changes['priority'] = validate_status(data['priority'], Ticket.ALL_PRIORITIES, 'priority')
    if 'issue_description' in data:
        changes['issue_description'] = require_text(data['issue_description'], 'issue_description', MIN_ISSUE_DESCRIPTION_LENGTH)
    if 'ai_diagnosis' in data:
        changes['ai_diagnosis'] = optional_text(data['ai_diagnosis'], 'ai_diagnosis')
    for field in ('estimated_cost', 'approved_cost', 'actual_cost'):
        if field in data:
            changes[field] = parse_money(data[field], field)
    if 'estimated_completion' in data:
        changes['estimated_completion'] = parse_datetime(data['estimated_completion'], 'estimated_completion')
    if 'tags' in data:
        changes['tags'] = parse_tags(data['tags'])

    ticket = load_ticket(session, identity, ticket_id)
    for field, value in changes.items():
        setattr(ticket, field, value)
    session.commit()

    publish(org_room(identity.organization_id), EVENT_TICKET_UPDATED, ticket_json(ticket))
    return ticket


def add_note(identity: Identity, ticket_id: int, content: Any, is_ai_generated: Any = False) -> TicketNote:
    session = get_db()
    content = require_text(content, 'content')
    if not isinstance(is_ai_generated, bool):
        raise ValidationError('is_ai_generated must be a boolean', details={'is_ai_generated': ['must be a boolean']})
    ticket = load_ticket(session, identity, ticket_id)
    note = TicketNote(ticket_id=ticket.id, user_id=identity.user_id, content=content, is_ai_generated=is_ai_generated)
    session.add(note)
    session.commit()

    publish(org_room(identity.organization_id), EVENT_TICKET_NOTE_ADDED, {'ticket_id': ticket.id, 'note': note_json(note)})
    return note


def build_ticket_query(session, identity: Identity, filters: Dict[str, Any]):
    """Tenant-scoped ticket query with optional status/priority/assignee/customer/search filters."""
    q = session.query(Ticket).filter(Ticket.organization_id == identity.organization_id)
    if filters.get('status'):
        q = q.filter(Ticket.status == validate_status(filters['status'], Ticket.ALL_STATUSES))
    if filters.get('priority'):
        q = q.filter(Ticket.priority == validate_status(filters['priority'], Ticket.ALL_PRIORITIES, 'priority'))
    if filters.get('assigned_to_id'):
        q = q.filter(Ticket.assigned_to_id == parse_id(filters['assigned_to_id'], 'assigned_to_id'))
    if filters.get('customer_id'):
        q = q.filter(Ticket.customer_id == parse_id(filters['customer_id'], 'customer_id'))
    search = (filters.get('search') or '').strip()
    if search:
        like = f'%{search}%'
        q = q.join(Ticket.customer).join(Ticket.device).filter(or_(
            Ticket.code.ilike(like),
            Ticket.issue_description.ilike(like),
            Customer.first_name.ilike(like),
            Customer.last_name.ilike(like),
            Customer.phone.contains(search, autoescape=True),
            Device.brand.ilike(like),
            Device.model.ilike(like),
        ))
    return q


def list_tickets(identity: Identity, filters: Dict[str, Any]):
    return build_ticket_query(get_db(), identity, filters)


__all__ = [
    'create_ticket', 'change_status', 'assign_ticket', 'update_ticket', 'add_note', 'get_ticket', 'list_tickets',
    'load_ticket', 'build_ticket_query', 'transition_validator', 'MIN_ISSUE_DESCRIPTION_LENGTH',
]
