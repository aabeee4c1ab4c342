# p2p_market/database.py
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool

from p2p_market.config import project_rules as R

logger = logging.getLogger(__name__)

DATABASE_URL = R.DATABASE_URL

# SQLite only: allow use from the request threadpool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# in-memory SQLite lives on a single connection, so share it
_IN_MEMORY = DATABASE_URL in ("sqlite://", "sqlite:///:memory:")

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    **({"poolclass": StaticPool} if _IN_MEMORY else {}),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


logger.info("Using database: %s", engine.url.render_as_string(hide_password=True))
