from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError

from app.auth import hash_password
from app.config import settings
from app.db import Base, SessionLocal, engine
from app.models import Payment, User


def migrate_payment_statuses(db) -> int:
    """Rewrite the legacy capitalized ``Unpaid`` status to ``unpaid``."""
    result = db.execute(update(Payment).where(Payment.status == "Unpaid").values(status="unpaid"))
    return result.rowcount or 0


def seed_admin(db) -> bool:
    if not settings.admin_email or not settings.admin_password:
        return False
    if db.execute(select(User.id).where(User.email == settings.admin_email)).first() is not None:
        return False
    db.add(
        User(
            email=settings.admin_email,
            password_hash=hash_password(settings.admin_password),
            role="admin",
            name="Administrator",
        )
    )
    return True


def main() -> None:
    print(f"DATABASE_URL={settings.database_url}")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("DB connection OK")
        Base.metadata.create_all(bind=engine)
        print("Schema OK")
        with SessionLocal() as db:
            migrated = migrate_payment_statuses(db)
            seeded = seed_admin(db)
            db.commit()
        print(f"Payment statuses migrated: {migrated}")
        if seeded:
            print(f"Admin user created: {settings.admin_email}")
    except SQLAlchemyError as exc:
        print("DB initialization FAILED")
        print(exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
