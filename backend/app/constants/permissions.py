"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently, tokens already issued carry them.
"""
from __future__ import annotations
from typing import List, Dict

SERVICE_ACTIONS = {
    'TICKET': ['READ', 'MANAGE', 'ASSIGN'],
    'CUSTOMER': ['READ', 'MANAGE'],
    'USER': ['READ'],
    'ORG': ['SETTINGS.MANAGE'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

# Keys are User.role values
ROLE_PRESETS: Dict[str, List[str]] = {
    'receptionist': ['TICKET.READ', 'TICKET.MANAGE', 'CUSTOMER.READ', 'CUSTOMER.MANAGE', 'USER.READ'],
    'technician': ['TICKET.READ', 'TICKET.MANAGE', 'CUSTOMER.READ', 'USER.READ'],
    'manager': [
        'TICKET.READ', 'TICKET.MANAGE', 'TICKET.ASSIGN',
        'CUSTOMER.READ', 'CUSTOMER.MANAGE',
        'USER.READ',
    ],
    'admin': ['*'],
}


def permissions_for_role(role: str) -> List[str]:
    codes = ROLE_PRESETS.get(role, [])
    if '*' in codes:
        return sorted(ALL_PERMISSION_CODES)
    return sorted(codes)
