from flask import Blueprint, request, current_app, g
from app import get_db
from app.decorators.auth import require_permissions
from app.errors import NotFoundError
from app.models.account import Organization
from app.serializers import organization_json
from app.services.ticket_codes import validate_prefix
from app.utils.validation import json_object, reject_unknown_fields

org_bp = Blueprint('organization', __name__)


def _current_org() -> Organization:
    org = get_db().get(Organization, g.identity.organization_id)
    if not org:
        raise NotFoundError('Organization not found')
    return org


@org_bp.get('')
@require_permissions('TICKET.READ')
def get_organization():
    return organization_json(_current_org(), current_app.config['TICKET_PREFIX'])


@org_bp.patch('')
@require_permissions('ORG.SETTINGS.MANAGE')
def update_settings():
    data = json_object(request.json)
    reject_unknown_fields(data, ('ticket_prefix',))
    org = _current_org()
    settings = dict(org.settings or {})
    if 'ticket_prefix' in data:
        settings['ticket_prefix'] = validate_prefix(data['ticket_prefix'])
    # reassign so the JSON column is flagged dirty
    org.settings = settings
    get_db().commit()
    current_app.logger.info('organization %s settings updated: %s', org.id, sorted(data))
    return organization_json(org, current_app.config['TICKET_PREFIX'])
