# create_admin.py
# Usage: python create_admin.py <email> <password> [full name]
# Uses DATABASE_URL from the environment (or .env), like the API itself.

import sys

from sqlmodel import Session, select

from doctracker.core.config import settings
from doctracker.core.logging_setup import logger
from doctracker.db.session import build_engine, init_db
from doctracker.models.user import User, UserRole
from doctracker.services.user import UserService


def main(argv: list[str]) -> int:
    if len(argv) < 2:
        print("Usage: python create_admin.py <email> <password> [full name]")
        return 2

    email = argv[0].strip().lower()
    password = argv[1]
    full_name = " ".join(argv[2:]).strip() or email.split("@", 1)[0]

    engine = build_engine(settings.database_url)
    init_db(engine)

    with Session(engine) as session:
        existing = session.exec(select(User).where(User.email == email)).first()
        if existing:
            existing.role = UserRole.ADMIN.value
            session.add(existing)
            session.commit()
            logger.info("Promoted existing user %s to admin", email)
            print(f"User {email} is now an admin (id={existing.id}).")
            return 0

        user = UserService(session).create_user(
            email=email,
            full_name=full_name,
            password=password,
            role=UserRole.ADMIN,
        )
        logger.info("Created admin %s", email)
        print(f"Admin {email} created (id={user.id}).")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
