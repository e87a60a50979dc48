from __future__ import annotations
from flask import Blueprint, request, g
from sqlalchemy import select, or_
from app import get_db
from app.decorators.auth import require_permissions
from app.errors import NotFoundError
from app.models.customer import Customer, Device
from app.serializers import customer_json, device_json
from app.utils.listing import apply_pagination, make_list_response
from app.utils.sorting import apply_sort
from app.utils.validation import json_object, require_text, optional_text, validate_choice

customers_bp = Blueprint('customers', __name__)


def _load_customer(customer_id: int) -> Customer:
    c = get_db().execute(
        select(Customer).where(Customer.id==customer_id, Customer.organization_id==g.identity.organization_id)
    ).scalar_one_or_none()
    if not c:
        raise NotFoundError('Customer not found')
    return c


def _devices_of(c: Customer):
    return get_db().execute(select(Device).where(Device.customer_id==c.id).order_by(Device.id.asc())).scalars().all()


@customers_bp.get('')
@require_permissions('CUSTOMER.READ')
def list_customers():
    session = get_db()
    q = session.query(Customer).filter(Customer.organization_id==g.identity.organization_id)
    search = (request.args.get('search') or '').strip()
    if search:
        like = f'%{search}%'
        q = q.filter(or_(Customer.first_name.ilike(like), Customer.last_name.ilike(like), Customer.phone.contains(search, autoescape=True)))
    allowed = {
        'first_name': Customer.first_name,
        'last_name': Customer.last_name,
        'id': Customer.id,
    }
    q = apply_sort(q, request.args.get('sort_by'), request.args.get('sort_order'), allowed, 'id', Customer.id)
    paged_q, total, page, page_size = apply_pagination(q)
    rows = paged_q.all()
    return make_list_response([customer_json(c) for c in rows], total, page, page_size)


@customers_bp.post('')
@require_permissions('CUSTOMER.MANAGE')
def create_customer():
    session = get_db()
    data = json_object(request.json)
    c = Customer(
        organization_id=g.identity.organization_id,
        first_name=require_text(data.get('first_name'), 'first_name', max_length=80),
        last_name=require_text(data.get('last_name'), 'last_name', max_length=80),
        phone=require_text(data.get('phone'), 'phone', min_length=10, max_length=32),
        email=optional_text(data.get('email'), 'email', max_length=128),
    )
    session.add(c)
    session.commit()
    return customer_json(c), 201


@customers_bp.get('/<int:customer_id>')
@require_permissions('CUSTOMER.READ')
def get_customer(customer_id: int):
    c = _load_customer(customer_id)
    return {**customer_json(c), 'devices': [device_json(d) for d in _devices_of(c)]}


@customers_bp.get('/<int:customer_id>/devices')
@require_permissions('CUSTOMER.READ')
def list_devices(customer_id: int):
    c = _load_customer(customer_id)
    return {'data': [device_json(d) for d in _devices_of(c)]}


@customers_bp.post('/<int:customer_id>/devices')
@require_permissions('CUSTOMER.MANAGE')
def create_device(customer_id: int):
    session = get_db()
    c = _load_customer(customer_id)
    data = json_object(request.json)
    d = Device(
        organization_id=c.organization_id,
        customer_id=c.id,
        type=validate_choice(data.get('type'), Device.ALL_TYPES, 'type', default=Device.TYPE_SMARTPHONE),
        brand=require_text(data.get('brand'), 'brand', max_length=80),
        model=require_text(data.get('model'), 'model', max_length=80),
        serial_number=optional_text(data.get('serial_number'), 'serial_number', max_length=80),
        imei=optional_text(data.get('imei'), 'imei', max_length=32),
    )
    session.add(d)
    session.commit()
    return device_json(d), 201
