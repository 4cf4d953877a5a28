import os
import sys
from contextlib import contextmanager
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.rijschool.models import Base  # noqa: E402
from app.rijschool.seed import ensure_admin, seed_roles  # noqa: E402


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    Base.metadata.create_all(engine)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def init_db(*, database_url: str | None = None) -> None:
    """
    Create missing tables and seed permissions/roles/admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@rijschool.pro").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///rijschool.db").strip()

    # Direct engine/session so this can run before the app (and gunicorn) boots.
    with _session_scope(db_url) as s:
        roles = seed_roles(s)
        ensure_admin(s, email=admin_email, password=admin_password)

    print("Initialized database.")
    print(f"Roles: {', '.join(sorted(roles))}")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    load_dotenv()
    init_db(database_url=None)


if __name__ == "__main__":
    main()
