from __future__ import annotations
"""Human-readable ticket codes: ``{PREFIX}-{YEAR}-{NNNNN}`` (e.g. FX-2025-00142).

Sequences are per (organization, year, prefix) and live in a counter row that
is bumped with a single UPDATE, so two writers can never read the same value.
The first allocation for a key seeds the counter from the greatest code
already stored, which keeps numbering continuous for rows that predate the
counter.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from app.errors import ConflictError, ValidationError
from app.models.ticket import Ticket, TicketCodeCounter

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 5
ALLOCATION_ATTEMPTS = 3
PREFIX_PATTERN = re.compile(r'^[A-Za-z0-9]{1,5}$')


def validate_prefix(prefix: str) -> str:
    if not isinstance(prefix, str) or not PREFIX_PATTERN.match(prefix):
        raise ValidationError('ticket_prefix must be 1-5 letters or digits', details={'ticket_prefix': ['invalid']})
    return prefix.upper()


def format_ticket_code(prefix: str, year: int, number: int) -> str:
    return f"{prefix}-{year}-{number:0{SEQUENCE_WIDTH}d}"


def parse_sequence(code: Optional[str]) -> int:
    """Trailing numeric segment of a code; 0 when absent or not numeric."""
    if not code:
        return 0
    parts = code.split('-')
    if len(parts) < 3 or not parts[2].isdigit():
        return 0
    return int(parts[2])


def find_latest_code(session, organization_id: int, prefix: str, year: int) -> Optional[str]:
    """Lexicographically greatest stored code for the organization matching ``{prefix}-{year}-*``."""
    return session.execute(
        select(Ticket.code)
        .where(Ticket.organization_id == organization_id, Ticket.code.startswith(f"{prefix}-{year}-", autoescape=True))
        .order_by(Ticket.code.desc())
        .limit(1)
    ).scalar_one_or_none()


def _counter_filter(organization_id: int, prefix: str, year: int):
    return (
        TicketCodeCounter.organization_id == organization_id,
        TicketCodeCounter.year == year,
        TicketCodeCounter.prefix == prefix,
    )


def next_ticket_code(session, organization_id: int, prefix: str = 'FX', year: Optional[int] = None) -> str:
    """Allocate the next code inside the caller's transaction.

    Call this before adding other pending objects to the session: losing the
    race to create the counter row rolls the session back before retrying.
    """
    year = year or datetime.now(timezone.utc).year
    where = _counter_filter(organization_id, prefix, year)
    for attempt in range(1, ALLOCATION_ATTEMPTS + 1):
        bumped = session.execute(
            update(TicketCodeCounter)
            .where(*where)
            .values(last_value=TicketCodeCounter.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount:
            value = session.execute(select(TicketCodeCounter.last_value).where(*where)).scalar_one()
            return format_ticket_code(prefix, year, value)

        seed = parse_sequence(find_latest_code(session, organization_id, prefix, year))
        counter = TicketCodeCounter(organization_id=organization_id, year=year, prefix=prefix, last_value=seed + 1)
        session.add(counter)
        try:
            session.flush()
        except IntegrityError:
            # another writer created the counter row first; its UPDATE path will now succeed
            session.rollback()
            logger.warning('ticket code counter contention for org %s (%s-%s), attempt %s', organization_id, prefix, year, attempt)
            continue
        return format_ticket_code(prefix, year, counter.last_value)
    raise ConflictError('Could not allocate a ticket code, please retry')


__all__ = ['validate_prefix', 'format_ticket_code', 'parse_sequence', 'find_latest_code', 'next_ticket_code']
