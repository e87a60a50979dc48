from flask import Blueprint, request, abort, g
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from sqlalchemy import select
from app.models.account import User
from app import get_db
from app.decorators.auth import require_permissions
from app.serializers import user_json
from app.services.policy import build_claims
from app.constants.permissions import permissions_for_role
from app.utils.validation import json_object

auth_bp = Blueprint('auth', __name__)


@auth_bp.post('/auth/login')
def login():
    data = json_object(request.json)
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email==email)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=build_claims(user))
    return {'access_token': token}


@auth_bp.get('/auth/me')
@jwt_required()
def me():
    user_id = int(get_jwt_identity())
    session = get_db()
    user = session.execute(select(User).where(User.id==user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    return {**user_json(user), 'perms': permissions_for_role(user.role)}


@auth_bp.get('/users')
@require_permissions('USER.READ')
def list_users():
    session = get_db()
    rows = session.execute(
        select(User).where(User.organization_id==g.identity.organization_id, User.is_active.is_(True)).order_by(User.name.asc())
    ).scalars().all()
    return {'data': [user_json(u) for u in rows]}
