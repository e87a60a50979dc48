import re
from decimal import Decimal
import pytest
from sqlalchemy.exc import OperationalError
from app import get_db
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.account import User
from app.models.notification import Notification
from app.models.ticket import Ticket, TicketStatusLog
from app.services import tickets as ticket_service
from app.services.status_log import latest_status_log, status_history
from tests.test_utils_seed import ensure_customer, ensure_device, ensure_user
from tests.test_lifecycle_helpers import seed_shop, ticket_payload, identity_of

CODE_RE = re.compile(r'^FX-\d{4}-\d{5}$')


def _log_count(ticket_id: int) -> int:
    return get_db().query(TicketStatusLog).filter_by(ticket_id=ticket_id).count()


def _ticket_count(org_id: int) -> int:
    return get_db().query(Ticket).filter_by(organization_id=org_id).count()


def test_create_ticket_starts_new_with_creation_log(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    assert CODE_RE.match(t.code)
    assert t.status == Ticket.STATUS_NEW
    assert t.priority == Ticket.PRIORITY_MEDIUM
    assert t.channel == Ticket.CHANNEL_WALK_IN
    assert t.created_by == shop.user.id
    logs = status_history(get_db(), t.id)
    assert len(logs) == 1
    assert logs[0].from_status is None
    assert logs[0].to_status == Ticket.STATUS_NEW
    assert logs[0].changed_by_id == shop.user.id
    assert logs[0].note == 'Ticket created'


def test_first_tickets_of_a_new_shop_are_numbered_from_one(app_context):
    from datetime import datetime, timezone
    shop = seed_shop()
    shop.org.name = 'Acme'
    get_db().commit()
    year = datetime.now(timezone.utc).year
    first = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    second = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    assert first.code == f'FX-{year}-00001'
    assert second.code == f'FX-{year}-00002'


def test_consecutive_tickets_get_consecutive_codes(app_context):
    shop = seed_shop()
    first = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    second = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    assert int(second.code.rsplit('-', 1)[1]) == int(first.code.rsplit('-', 1)[1]) + 1


def test_create_ticket_uses_organization_prefix(app_context):
    shop = seed_shop(settings={'ticket_prefix': 'RP'})
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    assert t.code.startswith('RP-')


def test_create_ticket_optional_fields(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(
        shop, priority='URGENT', channel='whatsapp', tags=['water', 'water', ' ', 'screen'],
        estimated_completion='2025-03-01T12:00:00Z',
    ))
    assert t.priority == 'urgent'
    assert t.channel == 'whatsapp'
    assert t.tags == ['water', 'screen']
    assert t.estimated_completion.year == 2025


def test_short_issue_description_rejected(app_context):
    shop = seed_shop()
    with pytest.raises(ValidationError) as exc:
        ticket_service.create_ticket(shop.identity, ticket_payload(shop, issue_description='broken'))
    assert 'issue_description' in exc.value.details
    assert _ticket_count(shop.org.id) == 0


def test_invalid_priority_rejected(app_context):
    shop = seed_shop()
    with pytest.raises(ValidationError):
        ticket_service.create_ticket(shop.identity, ticket_payload(shop, priority='asap'))


def test_device_of_other_customer_rejected_without_side_effects(app_context):
    shop = seed_shop()
    other_customer = ensure_customer(shop.org, first_name='Grace', last_name='Hopper')
    other_device = ensure_device(other_customer, brand='Samsung', model='S21')
    with pytest.raises(ValidationError) as exc:
        ticket_service.create_ticket(shop.identity, ticket_payload(shop, device_id=other_device.id))
    assert 'device_id' in exc.value.details
    assert _ticket_count(shop.org.id) == 0
    assert get_db().query(TicketStatusLog).join(Ticket).filter(Ticket.organization_id == shop.org.id).count() == 0


def test_customer_of_other_tenant_not_found(app_context):
    shop = seed_shop()
    foreign = seed_shop()
    with pytest.raises(NotFoundError):
        ticket_service.create_ticket(shop.identity, ticket_payload(shop, customer_id=foreign.customer.id, device_id=foreign.device.id))
    assert _ticket_count(shop.org.id) == 0


def test_assignee_must_belong_to_organization(app_context):
    shop = seed_shop()
    foreign = seed_shop()
    with pytest.raises(ValidationError):
        ticket_service.create_ticket(shop.identity, ticket_payload(shop, assigned_to_id=foreign.user.id))


def test_create_with_assignee_notifies_them(app_context):
    shop = seed_shop()
    tech = ensure_user(shop.org, User.ROLE_TECHNICIAN)
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop, assigned_to_id=tech.id))
    assert t.assigned_to_id == tech.id
    notes = get_db().query(Notification).filter_by(user_id=tech.id).all()
    assert len(notes) == 1
    assert notes[0].type == Notification.TYPE_TICKET_ASSIGNED
    assert t.code in notes[0].body
    assert notes[0].link == f'/tickets/{t.id}'


def test_change_status_appends_log_with_note(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    updated = ticket_service.change_status(shop.identity, t.id, 'in_repair', 'parts arrived')
    assert updated.status == Ticket.STATUS_IN_REPAIR
    log = latest_status_log(get_db(), t.id)
    assert log.from_status == Ticket.STATUS_NEW
    assert log.to_status == Ticket.STATUS_IN_REPAIR
    assert log.note == 'parts arrived'
    assert log.changed_by_id == shop.user.id
    assert _log_count(t.id) == 2


def test_change_status_accepts_any_target_and_case(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    ticket_service.change_status(shop.identity, t.id, 'READY_PICKUP')
    assert t.status == Ticket.STATUS_READY_PICKUP
    # same-status and backwards moves are recorded too
    ticket_service.change_status(shop.identity, t.id, 'ready_pickup')
    ticket_service.change_status(shop.identity, t.id, 'diagnosing')
    history = status_history(get_db(), t.id, newest_first=False)
    assert [(h.from_status, h.to_status) for h in history] == [
        (None, 'new'),
        ('new', 'ready_pickup'),
        ('ready_pickup', 'ready_pickup'),
        ('ready_pickup', 'diagnosing'),
    ]


def test_unknown_status_rejected_and_nothing_logged(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    with pytest.raises(ValidationError):
        ticket_service.change_status(shop.identity, t.id, 'teleported')
    assert get_db().get(Ticket, t.id).status == Ticket.STATUS_NEW
    assert _log_count(t.id) == 1


def test_failed_status_commit_rolls_back_ticket_and_log(app_context, monkeypatch):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    session = get_db()

    def failing_commit():
        raise OperationalError('COMMIT', {}, Exception('database is locked'))

    monkeypatch.setattr(session, 'commit', failing_commit)
    with pytest.raises(OperationalError):
        ticket_service.change_status(shop.identity, t.id, 'closed', 'done')
    reloaded = session.get(Ticket, t.id)
    assert reloaded.status == Ticket.STATUS_NEW
    assert reloaded.completed_at is None
    assert _log_count(t.id) == 1


def test_completion_time_set_once_and_kept_after_reopen(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    assert t.completed_at is None
    ticket_service.change_status(shop.identity, t.id, 'repaired')
    assert t.completed_at is None
    ticket_service.change_status(shop.identity, t.id, 'picked_up')
    stamped = t.completed_at
    assert stamped is not None
    ticket_service.change_status(shop.identity, t.id, 'in_repair')
    assert t.status == Ticket.STATUS_IN_REPAIR
    assert t.completed_at == stamped


def test_closing_stamps_completion_time(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    ticket_service.change_status(shop.identity, t.id, 'closed')
    assert t.completed_at is not None


def test_change_status_other_tenant_not_found(app_context):
    shop = seed_shop()
    foreign = seed_shop()
    t = ticket_service.create_ticket(foreign.identity, ticket_payload(foreign))
    with pytest.raises(NotFoundError):
        ticket_service.change_status(shop.identity, t.id, 'closed')
    assert get_db().get(Ticket, t.id).status == Ticket.STATUS_NEW


def test_guided_transitions_when_enforced(app_context, monkeypatch):
    monkeypatch.setitem(app_context.config, 'ENFORCE_TICKET_TRANSITIONS', True)
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    with pytest.raises(ValidationError):
        ticket_service.change_status(shop.identity, t.id, 'closed')
    ticket_service.change_status(shop.identity, t.id, 'checked_in')
    assert t.status == Ticket.STATUS_CHECKED_IN
    assert _log_count(t.id) == 2


def test_assign_and_unassign_leave_status_and_history_alone(app_context):
    shop = seed_shop()
    tech = ensure_user(shop.org, User.ROLE_TECHNICIAN)
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    ticket_service.assign_ticket(shop.identity, t.id, tech.id)
    assert t.assigned_to_id == tech.id
    ticket_service.assign_ticket(shop.identity, t.id, None)
    assert t.assigned_to_id is None
    assert t.status == Ticket.STATUS_NEW
    assert _log_count(t.id) == 1
    # only the assignment produced a notification
    assert get_db().query(Notification).filter_by(user_id=tech.id).count() == 1


def test_assign_inactive_user_rejected(app_context):
    shop = seed_shop()
    gone = ensure_user(shop.org, User.ROLE_TECHNICIAN, is_active=False)
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    with pytest.raises(ValidationError):
        ticket_service.assign_ticket(shop.identity, t.id, gone.id)
    assert get_db().get(Ticket, t.id).assigned_to_id is None


def test_update_ticket_edits_costs_and_rejects_protected_fields(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    ticket_service.update_ticket(shop.identity, t.id, {'estimated_cost': '12.5', 'ai_diagnosis': 'Likely LCD failure'})
    assert t.estimated_cost == Decimal('12.50')
    assert t.ai_diagnosis == 'Likely LCD failure'
    for field, value in (('status', 'closed'), ('code', 'FX-1999-00001'), ('completed_at', '2025-01-01T00:00:00Z')):
        with pytest.raises(ValidationError) as exc:
            ticket_service.update_ticket(shop.identity, t.id, {field: value})
        assert field in exc.value.details
    with pytest.raises(ValidationError):
        ticket_service.update_ticket(shop.identity, t.id, {'estimated_cost': -1})
    assert t.status == Ticket.STATUS_NEW
    assert _log_count(t.id) == 1


def test_add_note(app_context):
    shop = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    note = ticket_service.add_note(shop.identity, t.id, '  Customer called for an update ')
    assert note.content == 'Customer called for an update'
    assert note.is_ai_generated is False
    with pytest.raises(ValidationError):
        ticket_service.add_note(shop.identity, t.id, '   ')
    with pytest.raises(ValidationError):
        ticket_service.add_note(shop.identity, t.id, 'ok', is_ai_generated='yes')


def test_identity_of_foreign_user_sees_nothing(app_context):
    shop = seed_shop()
    foreign = seed_shop()
    t = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    with pytest.raises(NotFoundError):
        ticket_service.get_ticket(identity_of(foreign.user), t.id)


def test_duplicate_ticket_code_is_a_conflict(app_context, monkeypatch):
    shop = seed_shop()
    first = ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    monkeypatch.setattr(ticket_service, 'next_ticket_code', lambda *args, **kwargs: first.code)
    with pytest.raises(ConflictError):
        ticket_service.create_ticket(shop.identity, ticket_payload(shop))
    assert _ticket_count(shop.org.id) == 1
    assert _log_count(first.id) == 1
    assert get_db().query(TicketStatusLog).join(Ticket).filter(Ticket.organization_id == shop.org.id).count() == 1
