"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.settings import settings
from app.logging_config import get_logger

logger = get_logger(__name__)

connection_string = settings.database_url

engine_kwargs = {
    "echo": False,  # Set to True for SQL query logging
    "pool_pre_ping": True,  # Verify connections before using
}
if connection_string.startswith("sqlite"):
    # SQLite connections are used from the threadpool FastAPI runs sync code in
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    logger.info("Database connection: SQLite")
else:
    engine_kwargs["pool_recycle"] = 3600  # Recycle connections after 1 hour
    # Log connection info (without password)
    logger.info(f"Database connection: {settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME} (PostgreSQL)")

engine = create_engine(connection_string, **engine_kwargs)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/boms")
        def list_boms(db: Session = Depends(get_db)):
            return db.query(BOM).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
