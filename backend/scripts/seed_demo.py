#!/usr/bin/env python
"""Idempotent seed script for a demo repair shop.

Creates one organization with a user per role plus a sample customer and
device, so the API and the dashboard can be exercised right after setup.

Usage:
    python backend/scripts/seed_demo.py                  # seed normally
    python backend/scripts/seed_demo.py --prefix RP      # set the org's ticket prefix
    python backend/scripts/seed_demo.py --show-users     # print users and their permissions
    python backend/scripts/seed_demo.py --dry-run        # run logic then rollback (no DB changes)
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from app import create_app, get_db  # type: ignore
from app.models.account import Base, Organization, User
from app.models.customer import Customer, Device
import app.models.ticket  # noqa: F401
import app.models.notification  # noqa: F401
from app.constants.permissions import permissions_for_role
from app.services.ticket_codes import validate_prefix


def ensure_organization(session, name, prefix=None):
    org = session.execute(select(Organization).where(Organization.name==name)).scalar_one_or_none()
    created = 0
    if not org:
        org = Organization(name=name, settings={})
        session.add(org)
        session.flush()
        created = 1
    if prefix:
        settings = dict(org.settings or {})
        settings['ticket_prefix'] = validate_prefix(prefix)
        org.settings = settings
    return org, created


def ensure_users(session, org, domain, password):
    created = 0
    for role in User.ALL_ROLES:
        email = f'{role}@{domain}'
        user = session.execute(select(User).where(User.email==email)).scalar_one_or_none()
        if user:
            continue
        user = User(organization_id=org.id, name=role.capitalize(), email=email, password_hash='', role=role)
        user.set_password(password)
        session.add(user)
        created += 1
    return created


def ensure_sample_customer(session, org):
    customer = session.execute(
        select(Customer).where(Customer.organization_id==org.id, Customer.phone=='5550100100')
    ).scalar_one_or_none()
    if customer:
        return 0
    customer = Customer(organization_id=org.id, first_name='Sample', last_name='Customer', phone='5550100100', email='sample@example.com')
    session.add(customer)
    session.flush()
    session.add(Device(organization_id=org.id, customer_id=customer.id, type=Device.TYPE_SMARTPHONE, brand='Apple', model='iPhone 13'))
    return 1


def print_user_summary(session, org):
    rows = session.execute(select(User).where(User.organization_id==org.id).order_by(User.id)).scalars().all()
    if not rows:
        print("[INFO] No users present.")
        return
    email_w = max(len(u.email) for u in rows)
    print(f"{'Email'.ljust(email_w)} | Role         | Permissions")
    print('-' * (email_w + 60))
    for u in rows:
        print(f"{u.email.ljust(email_w)} | {u.role.ljust(12)} | {', '.join(permissions_for_role(u.role))}")


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed a demo organization, staff users and a sample customer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_demo.py\n  dry run: seed_demo.py --dry-run\n  custom prefix: seed_demo.py --prefix RP\n""")
    )
    p.add_argument('--org-name', default=os.getenv('SEED_ORG_NAME', 'Demo Repair Shop'), help='Organization name (lookup key)')
    p.add_argument('--prefix', help='Ticket code prefix for the organization (1-5 letters/digits)')
    p.add_argument('--email-domain', default=os.getenv('SEED_EMAIL_DOMAIN', 'example.com'), help='Domain for the seeded users')
    p.add_argument('--password', default=os.getenv('SEED_PASSWORD', 'ChangeMe123!'), help='Password for newly created users')
    p.add_argument('--show-users', action='store_true', help='Print users and permissions after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM organizations LIMIT 1'))
        except Exception:
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            session.rollback()
            Base.metadata.create_all(session.get_bind())

        try:
            org, created_o = ensure_organization(session, args.org_name, args.prefix)
            created_u = ensure_users(session, org, args.email_domain, args.password)
            created_c = ensure_sample_customer(session, org)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Organizations: {created_o}, Users: {created_u}, Customers: {created_c}")
            else:
                session.commit()
                print(f"[DONE] Organizations created: {created_o}, Users created: {created_u}, Customers created: {created_c}")
                if args.show_users:
                    print('\nUser Summary:')
                    print_user_summary(session, org)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
