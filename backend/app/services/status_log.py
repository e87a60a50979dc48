from __future__ import annotations
from typing import List, Optional
from sqlalchemy import select
from app.models.ticket import Ticket, TicketStatusLog


def append_status_log(session, ticket: Ticket, from_status: Optional[str], to_status: str, actor_user_id: int, note: Optional[str] = None) -> TicketStatusLog:
    """Stage a status-log entry within the current DB session.

    Parameters:
      ticket: the ticket whose status moved (must already have an id)
      from_status: previous status, None only for the creation entry
      to_status: status the ticket now has
      actor_user_id: user performing the change
      note: optional free text

    No commit here; caller's transaction boundary groups it with the ticket update.
    """
    log = TicketStatusLog(
        ticket_id=ticket.id,
        from_status=from_status,
        to_status=to_status,
        changed_by_id=actor_user_id,
        note=note,
    )
    session.add(log)
    return log


def latest_status_log(session, ticket_id: int) -> Optional[TicketStatusLog]:
    return session.execute(
        select(TicketStatusLog)
        .where(TicketStatusLog.ticket_id == ticket_id)
        .order_by(TicketStatusLog.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def status_history(session, ticket_id: int, newest_first: bool = True) -> List[TicketStatusLog]:
    order = TicketStatusLog.id.desc() if newest_first else TicketStatusLog.id.asc()
    return list(session.execute(
        select(TicketStatusLog).where(TicketStatusLog.ticket_id == ticket_id).order_by(order)
    ).scalars())
