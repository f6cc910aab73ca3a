"""Seed database with admin accounts and baseline settings."""
from alembic_bootstrap import stamp_baseline
from parts_recovery.auth import get_password_hash
from parts_recovery.config import settings
from parts_recovery.database import Base, SessionLocal, engine
from parts_recovery.models import AutoRecoveryModel, Carrier, User
from parts_recovery.use_cases.recovery_settings import DEFAULT_CARRIERS


def seed():
    """Create tables if missing, then insert whatever baseline rows do not exist yet."""
    Base.metadata.create_all(bind=engine)
    stamp_baseline(engine)
    db = SessionLocal()

    try:
        for user_code, user_type in settings.admin_codes.items():
            if db.query(User).filter(User.user_code == user_code).first():
                print(f"  - {user_code} already exists")
                continue
            db.add(
                User(
                    user_code=user_code,
                    user_type=user_type,
                    password_hash=get_password_hash(settings.ADMIN_DEFAULT_PASSWORD),
                    is_default_password=True,
                    is_active=True,
                )
            )
            print(f"  ✓ {user_code} ({user_type})")

        for prefix in settings.auto_recovery_default_prefixes:
            if db.query(AutoRecoveryModel).filter(AutoRecoveryModel.model_prefix == prefix).first():
                continue
            db.add(AutoRecoveryModel(model_prefix=prefix, is_active=True, created_by="SYSTEM"))
            print(f"  ✓ auto-recovery prefix {prefix}")

        for name in DEFAULT_CARRIERS:
            if db.query(Carrier).filter(Carrier.name == name).first():
                continue
            db.add(Carrier(name=name, is_active=True))

        db.commit()
        print("✅ Seed complete")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
