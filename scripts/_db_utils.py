from __future__ import annotations

import os
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.caixa.db import build_engine, make_sessionmaker


def script_database_url(explicit: str | None = None) -> str:
    return (explicit or os.environ.get("DATABASE_URL") or "sqlite:///caixa.db").strip()


@contextmanager
def script_session(db_url: str):
    """Standalone session with the app's engine settings; commits on clean exit."""
    engine = build_engine(db_url)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
