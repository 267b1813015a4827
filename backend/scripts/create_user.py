"""CLI script to create a user with any role, including staff and admin.

Self-registration over HTTP only offers the student and instructor
roles; operators use this script for everything else.
Usage: python scripts/create_user.py NAME EMAIL PASSWORD [--role ROLE]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `campus_api` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from campus_api.database import engine, create_db_and_tables
from campus_api import models, repositories, services


def main(name: str, email: str, password: str, role: str = 'admin') -> int:
    """Create the user unless the email is taken and print the outcome."""
    create_db_and_tables()
    with Session(engine) as session:
        existing = repositories.UserRepository(session).get_by_email(email.strip().lower())
        if existing:
            print(f'User {existing.email} already exists with role {existing.role}')
            return 1
        user = services.AuthService(session).register(name, email, password, role)
        print(f'Created user {user.id}: {user.email} ({user.role})')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('name')
    parser.add_argument('email')
    parser.add_argument('password')
    parser.add_argument('--role', default='admin', choices=[r.value for r in models.Role])
    args = parser.parse_args()
    sys.exit(main(args.name, args.email, args.password, role=args.role))
