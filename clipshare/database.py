from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from .config import Settings
import logging

logger = logging.getLogger(__name__)

def engine_options(database_url: str) -> dict:
    """Connection options for the configured backend"""
    if database_url.startswith("sqlite"):
        # Sessions are opened from FastAPI's threadpool
        return {
            "connect_args": {"check_same_thread": False, "timeout": 30},
        }

    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "echo": False,
        "connect_args": {
            "connect_timeout": 30,
            "application_name": "clips-api",
        },
    }

def create_database_engine(settings: Settings):
    """Create the database engine from settings"""
    try:
        engine = create_engine(settings.database_url, **engine_options(settings.database_url))
        logger.info("🗄️ Database engine created")
        return engine

    except Exception as e:
        logger.error(f"❌ Failed to create database engine: {e}")
        raise

def create_session_factory(engine):
    # Rows stay readable after commit (delete hands back the removed row)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

def session_scope(session_factory):
    """Yield one session for one request, always closed afterwards"""
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
