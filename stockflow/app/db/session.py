from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockflow.app.core.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, echo=settings.DATABASE_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
