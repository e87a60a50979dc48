from __future__ import annotations
"""Simple finite state machine utility for status transitions.

A validator built without a graph is permissive: every target in ``states``
is reachable from every state, including itself. Passing a graph restricts
targets to the listed successors.

Usage:
    from app.utils.fsm import TransitionValidator
    TICKET_FSM = TransitionValidator(states=Ticket.ALL_STATUSES)
    TICKET_FSM.assert_can_transition(current_status, target_status)

Raises ValidationError if the transition is not allowed.
"""
from typing import Dict, Iterable, Optional, Set
from app.errors import ValidationError


class TransitionValidator:
    def __init__(self, graph: Optional[Dict[str, Set[str]]] = None, field_name: str = 'status', states: Iterable[str] = ()):
        self.graph = graph
        self.field_name = field_name
        self.states = set(states) | set(graph or {})

    def allowed_targets(self, current: str) -> Set[str]:
        if self.graph is None:
            return set(self.states)
        return set(self.graph.get(current, set()))

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.allowed_targets(current)

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise ValidationError(
                f"Invalid {self.field_name} transition {current} -> {target}",
                details={self.field_name: [f'{current} -> {target} not allowed']},
            )
        return True

__all__ = ['TransitionValidator']
