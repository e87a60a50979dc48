from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, Numeric, JSON, ForeignKey, DateTime, UniqueConstraint
from .account import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Ticket(Base):
    __tablename__ = 'tickets'
    # Status constants
    STATUS_NEW = 'new'
    STATUS_CHECKED_IN = 'checked_in'
    STATUS_DIAGNOSING = 'diagnosing'
    STATUS_WAITING_APPROVAL = 'waiting_approval'
    STATUS_WAITING_PARTS = 'waiting_parts'
    STATUS_IN_REPAIR = 'in_repair'
    STATUS_QUALITY_CHECK = 'quality_check'
    STATUS_REPAIRED = 'repaired'
    STATUS_READY_PICKUP = 'ready_pickup'
    STATUS_PICKED_UP = 'picked_up'
    STATUS_CLOSED = 'closed'
    STATUS_CANCELLED = 'cancelled'
    ALL_STATUSES = (
        STATUS_NEW, STATUS_CHECKED_IN, STATUS_DIAGNOSING, STATUS_WAITING_APPROVAL, STATUS_WAITING_PARTS,
        STATUS_IN_REPAIR, STATUS_QUALITY_CHECK, STATUS_REPAIRED, STATUS_READY_PICKUP, STATUS_PICKED_UP,
        STATUS_CLOSED, STATUS_CANCELLED,
    )
    # Entering one of these stamps completed_at
    COMPLETION_STATUSES = (STATUS_CLOSED, STATUS_PICKED_UP)

    PRIORITY_LOW = 'low'
    PRIORITY_MEDIUM = 'medium'
    PRIORITY_HIGH = 'high'
    PRIORITY_URGENT = 'urgent'
    ALL_PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH, PRIORITY_URGENT)

    CHANNEL_WALK_IN = 'walk_in'
    CHANNEL_WHATSAPP = 'whatsapp'
    CHANNEL_PHONE = 'phone'
    CHANNEL_EMAIL = 'email'
    CHANNEL_WEBSITE = 'website'
    ALL_CHANNELS = (CHANNEL_WALK_IN, CHANNEL_WHATSAPP, CHANNEL_PHONE, CHANNEL_EMAIL, CHANNEL_WEBSITE)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_id: Mapped[int] = mapped_column(ForeignKey('customers.id'), nullable=False, index=True)
    device_id: Mapped[int] = mapped_column(ForeignKey('devices.id'), nullable=False, index=True)
    assigned_to_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_NEW, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=PRIORITY_MEDIUM)
    channel: Mapped[str] = mapped_column(String(16), nullable=False, default=CHANNEL_WALK_IN)
    issue_description: Mapped[str] = mapped_column(Text, nullable=False)
    ai_diagnosis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    approved_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    actual_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    estimated_completion: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    # [{"url": ..., "name": ..., "content_type": ...}]
    attachments: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = relationship('Customer')
    device = relationship('Device')
    assigned_to = relationship('User', foreign_keys=[assigned_to_id])
    status_logs = relationship('TicketStatusLog', back_populates='ticket', order_by='TicketStatusLog.id')
    notes = relationship('TicketNote', back_populates='ticket', order_by='TicketNote.id')

    __table_args__ = (UniqueConstraint('organization_id', 'code', name='uq_ticket_org_code'),)


class TicketStatusLog(Base):
    """Append-only status history. Rows are inserted, never updated or deleted."""
    __tablename__ = 'ticket_status_logs'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id', ondelete='RESTRICT'), nullable=False, index=True)
    # None only for the creation entry
    from_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_by_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    ticket = relationship('Ticket', back_populates='status_logs')


class TicketNote(Base):
    __tablename__ = 'ticket_notes'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey('tickets.id', ondelete='RESTRICT'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    ticket = relationship('Ticket', back_populates='notes')


class TicketCodeCounter(Base):
    __tablename__ = 'ticket_code_counters'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    prefix: Mapped[str] = mapped_column(String(8), nullable=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint('organization_id', 'year', 'prefix', name='uq_ticket_code_counter'),)
