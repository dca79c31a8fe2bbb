"""CLI script to provision a user and print a bearer token for it.
Usage: python scripts/create_user.py EMAIL "Full Name" [--role admin|supervisor|beca]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `workscholarship` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from workscholarship import models, repositories
from workscholarship.auth import create_access_token
from workscholarship.database import create_db_and_tables, engine
from workscholarship.enums import UserRole


def main(email: str, full_name: str, role: UserRole, expires_hours: int = 24):
    """Create the user unless the email is already taken, then print a token.

    An existing user keeps its stored role; the token reflects that role.
    """
    create_db_and_tables()
    with Session(engine) as session:
        users = repositories.UserRepository(session)
        user = users.get_by_email(email)
        if user is None:
            user = users.create(models.User(email=email, full_name=full_name, role=role))
            print(f'Created {user.role.value} {user.email} ({user.id})')
        else:
            print(f'User {user.email} already exists with role {user.role.value}')
        print(create_access_token(user, expires_hours=expires_hours))


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('email')
    parser.add_argument('full_name')
    parser.add_argument('--role', choices=[r.value for r in UserRole], default=UserRole.ADMIN.value)
    parser.add_argument('--expires-hours', type=int, default=24, help='Token lifetime in hours')
    args = parser.parse_args()
    main(args.email, args.full_name, UserRole(args.role), args.expires_hours)
