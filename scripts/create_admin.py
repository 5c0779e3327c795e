import os
import sys
import argparse
import getpass

# Ensure project root is on sys.path
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from portal_app import create_app, db
from portal_app.identity import hash_password
from portal_app.models import TeamMember
from sqlalchemy import select


def create_admin(username: str, password: str, role: str, full_name: str) -> None:
    app = create_app()
    with app.app_context():
        member = db.session.execute(
            select(TeamMember).filter_by(username=username)
        ).scalars().first()
        if member:
            member.password_hash = hash_password(password)
            member.role = role
            member.is_active = True
            db.session.commit()
            print(f"Updated existing operator '{username}' (role {role}).")
            return
        db.session.add(TeamMember(
            username=username,
            password_hash=hash_password(password),
            role=role,
            full_name=full_name,
        ))
        db.session.commit()
        print(f"Created operator '{username}' with role {role}.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or reset a portal operator account.")
    parser.add_argument("--username", required=True, help="Login name of the operator")
    parser.add_argument("--role", default="super_admin", choices=TeamMember.ROLES)
    parser.add_argument("--full-name", default="", help="Name shown on the public team page")
    parser.add_argument("--password", help="Password (prompted when omitted)")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        print("ERROR: password must be at least 8 characters")
        sys.exit(2)
    create_admin(args.username, password, args.role, args.full_name)
