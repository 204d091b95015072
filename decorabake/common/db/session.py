from contextlib import contextmanager
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..models import Base


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/app.db")


def _ensure_sqlite_dir(database_url: str) -> None:
    # Ensure sqlite file parent directory exists to avoid 'unable to open database file'
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        db_path = database_url.split("sqlite:///")[-1]
        try:
            parent = Path(db_path).expanduser().resolve().parent
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            # best-effort; real error will surface on connect if still invalid
            pass


def make_engine(database_url: str):
    _ensure_sqlite_dir(database_url)
    connect_args = {}
    if database_url.startswith("sqlite"):
        # concurrent checkouts write from different threads; wait on the sqlite lock instead of failing
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(database_url, future=True, connect_args=connect_args)


def make_session_factory(engine):
    """Build a ``get_session``-compatible unit-of-work factory bound to ``engine``."""
    maker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def session_scope():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


def init_db(engine) -> None:
    Base.metadata.create_all(engine)


engine = make_engine(DATABASE_URL)
get_session = make_session_factory(engine)
