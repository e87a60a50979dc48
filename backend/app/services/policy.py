from __future__ import annotations
from dataclasses import dataclass
from typing import Set
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity
from app.constants.permissions import permissions_for_role
from app.models.account import User


@dataclass(frozen=True)
class Identity:
    """Caller context every service operation runs under (tenant + acting user)."""
    organization_id: int
    user_id: int


def current_identity() -> Identity:
    claims = get_jwt()
    org_id = claims.get('org_id')
    if org_id is None:
        abort(401, description='Token missing organization')
    # JWT identity is stored as a string (flask-jwt-extended v4 requirement)
    return Identity(organization_id=int(org_id), user_id=int(get_jwt_identity()))


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def build_claims(user: User) -> dict:
    return {
        'org_id': user.organization_id,
        'role': user.role,
        'perms': permissions_for_role(user.role),
    }
