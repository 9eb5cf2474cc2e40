"""Idempotent bootstrap of the first Super Admin account.

Accounts are only ever created by an authorized actor, so a fresh directory
needs one seeded Super Admin to start from.

Usage:
    python backend/scripts/seed_superadmin.py --email root@example.com --password s3cret!
    python backend/scripts/seed_superadmin.py --email root@example.com --dry-run
    python backend/scripts/seed_superadmin.py --email root@example.com --create-tables
"""
from __future__ import annotations
import os, sys, argparse, secrets

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from inventory_iam import create_app, get_db, get_directory, get_identity_provider  # type: ignore
from inventory_iam.constants.roles import AccountType, Department, Role
from inventory_iam.errors import IamError
from inventory_iam.models.account import Base
import inventory_iam.models.audit  # noqa: F401
from inventory_iam.services.directory import Account


def ensure_superadmin(email: str, password: str, department: Department) -> str:
    directory = get_directory()
    existing = directory.find_by_identity(email)
    if existing is not None:
        if existing.role is not Role.SUPER_ADMIN:
            directory.update(existing.id, {'role': Role.SUPER_ADMIN})
            return 'promoted'
        return 'exists'
    idp = get_identity_provider()
    if not idp.has_identity(email):
        idp.provision_identity(email, password)
    directory.insert(Account(
        id=None,
        identity=email,
        department=department,
        role=Role.SUPER_ADMIN,
        account_type=AccountType.TYPE_0,
    ))
    return 'created'


def main():
    parser = argparse.ArgumentParser(description='Seed the first Super Admin account')
    parser.add_argument('--email', required=True)
    parser.add_argument('--password', help='initial password (random if omitted)')
    parser.add_argument('--department', default=Department.ADMINISTRATORS.value,
                        choices=[d.value for d in Department])
    parser.add_argument('--create-tables', action='store_true', help='create missing tables first')
    parser.add_argument('--dry-run', action='store_true', help='report what would happen, change nothing')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.create_tables:
            Base.metadata.create_all(get_db().get_bind())
        if args.dry_run:
            existing = get_directory().find_by_identity(args.email)
            print(f"[dry-run] {args.email}: {'exists as ' + existing.role.value if existing else 'would be created'}")
            return 0
        password = args.password or secrets.token_urlsafe(12)
        try:
            outcome = ensure_superadmin(args.email, password, Department(args.department))
        except IamError as e:
            print(f"Seed failed: {e.detail}", file=sys.stderr)
            return 1
        print(f"Super Admin {args.email}: {outcome}")
        if outcome == 'created' and not args.password:
            print(f"Initial password: {password}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
