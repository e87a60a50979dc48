from __future__ import annotations
"""JSON shapes shared by route handlers and broadcast payloads."""
from decimal import Decimal
from typing import Optional
from app.models.account import Organization, User
from app.models.customer import Customer, Device
from app.models.notification import Notification
from app.models.ticket import Ticket, TicketNote, TicketStatusLog
from app.utils.listing import iso


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def user_json(u: User):
    return {
        'id': u.id,
        'organization_id': u.organization_id,
        'name': u.name,
        'email': u.email,
        'role': u.role,
        'is_active': u.is_active,
    }


def organization_json(o: Organization, default_prefix: str = 'FX'):
    return {
        'id': o.id,
        'name': o.name,
        'settings': {**(o.settings or {}), 'ticket_prefix': o.ticket_prefix(default_prefix)},
    }


def customer_json(c: Customer):
    return {
        'id': c.id,
        'first_name': c.first_name,
        'last_name': c.last_name,
        'phone': c.phone,
        'email': c.email,
    }


def device_json(d: Device):
    return {
        'id': d.id,
        'customer_id': d.customer_id,
        'type': d.type,
        'brand': d.brand,
        'model': d.model,
        'serial_number': d.serial_number,
        'imei': d.imei,
    }


def ticket_json(t: Ticket):
    return {
        'id': t.id,
        'organization_id': t.organization_id,
        'code': t.code,
        'customer_id': t.customer_id,
        'device_id': t.device_id,
        'assigned_to_id': t.assigned_to_id,
        'created_by': t.created_by,
        'status': t.status,
        'priority': t.priority,
        'channel': t.channel,
        'issue_description': t.issue_description,
        'ai_diagnosis': t.ai_diagnosis,
        'estimated_cost': _money(t.estimated_cost),
        'approved_cost': _money(t.approved_cost),
        'actual_cost': _money(t.actual_cost),
        'estimated_completion': iso(t.estimated_completion),
        'completed_at': iso(t.completed_at),
        'tags': list(t.tags or []),
        'attachments': list(t.attachments or []),
        'created_at': iso(t.created_at),
        'updated_at': iso(t.updated_at),
    }


def status_log_json(log: TicketStatusLog):
    return {
        'id': log.id,
        'ticket_id': log.ticket_id,
        'from_status': log.from_status,
        'to_status': log.to_status,
        'changed_by_id': log.changed_by_id,
        'note': log.note,
        'created_at': iso(log.created_at),
    }


def note_json(n: TicketNote):
    return {
        'id': n.id,
        'ticket_id': n.ticket_id,
        'user_id': n.user_id,
        'content': n.content,
        'is_ai_generated': n.is_ai_generated,
        'created_at': iso(n.created_at),
    }


def notification_json(n: Notification):
    return {
        'id': n.id,
        'type': n.type,
        'title': n.title,
        'body': n.body,
        'link': n.link,
        'read_at': iso(n.read_at),
        'created_at': iso(n.created_at),
    }
