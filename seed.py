import argparse
import logging

from app.config import settings
from app.database import create_db_engine, create_session_factory, init_db
from app.models.all_models import User, UserRole
from app.utils.auth import hash_password

logger = logging.getLogger("seed")


def create_admin_user(email, password, name, phone, database_url=None):
    engine = create_db_engine(database_url or settings.DATABASE_URL)
    init_db(engine)
    session = create_session_factory(engine)()

    try:
        # Check if admin user already exists
        existing_user = session.query(User).filter(
            (User.email == email.lower()) | (User.phone == phone)
        ).first()
        if existing_user:
            print(f"Error: User with email {email} or phone {phone} already exists")
            return None

        new_user = User(
            name=name,
            email=email.lower(),
            phone=phone,
            password=hash_password(password),
            role=UserRole.ADMIN,
            is_verified=True,
        )
        session.add(new_user)
        session.commit()

        print(f"Admin user created successfully: {email}")
        return new_user.id

    except Exception:
        session.rollback()
        logger.exception("Error creating admin user")
        raise
    finally:
        session.close()
        engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    parser = argparse.ArgumentParser(description="Create an admin user")
    parser.add_argument("--email", required=True, help="Admin email address")
    parser.add_argument("--password", required=True, help="Admin password")
    parser.add_argument("--name", required=True, help="Full name")
    parser.add_argument("--phone", required=True, help="Phone number")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")

    args = parser.parse_args()

    create_admin_user(
        email=args.email,
        password=args.password,
        name=args.name,
        phone=args.phone,
        database_url=args.database_url,
    )
