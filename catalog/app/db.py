import logging
from datetime import datetime, timezone
from decimal import Decimal

from fastapi import Request
from sqlalchemy import create_engine, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Settings
from .models import Base, Product

logger = logging.getLogger("catalog.db")

SAMPLE_PRODUCTS = [
    ("Classic T-Shirt", "Comfortable cotton t-shirt", "19.99", "T-Shirt"),
    ("Denim Jeans", "Stylish blue jeans", "49.99", "Jeans"),
    ("Leather Jacket", "Premium leather jacket", "199.99", "Jacket"),
    ("Summer Dress", "Light and breezy dress", "39.99", "Dress"),
    ("Sneakers", "Comfortable running sneakers", "79.99", "Sneakers"),
    ("Winter Coat", "Warm winter coat", "149.99", "Coat"),
    ("Baseball Cap", "Stylish baseball cap", "24.99", "Cap"),
    ("Hoodie", "Cozy pullover hoodie", "59.99", "Hoodie"),
    ("Shorts", "Casual summer shorts", "29.99", "Shorts"),
    ("Scarf", "Elegant silk scarf", "34.99", "Scarf"),
]


def create_db_engine(settings: Settings) -> Engine:
    if settings.uses_sqlite:
        # One shared connection so every session sees the same in-memory database
        return create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )

    connect_args = {}
    if settings.db_schema:
        # set search_path so unqualified tables use our schema
        connect_args["options"] = f"-csearch_path={settings.db_schema},public"
    return create_engine(
        settings.database_url, connect_args=connect_args, pool_pre_ping=True, future=True
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def describe_backend(engine: Engine) -> str:
    url = engine.url
    if url.drivername.startswith("sqlite"):
        return "sqlite (in-memory)" if not url.database else f"sqlite ({url.database})"
    return f"{url.drivername} host={url.host} database={url.database}"


def seed_products(session: Session) -> int:
    """Insert the sample catalogue into an empty table. Returns rows added."""
    if session.scalar(select(func.count()).select_from(Product)):
        return 0
    now = datetime.now(timezone.utc)
    for name, description, price, label in SAMPLE_PRODUCTS:
        session.add(Product(
            name=name,
            description=description,
            price=Decimal(price),
            image=f"https://via.placeholder.com/300x400?text={label}",
            created_at=now,
            updated_at=now,
        ))
    return len(SAMPLE_PRODUCTS)


def init_db(engine: Engine, settings: Settings) -> None:
    """
    Ensure the schema exists, then create tables (idempotent) and seed if asked.
    Called once at application startup.
    """
    logger.info("Initialising database: %s", describe_backend(engine))
    try:
        if settings.db_schema and engine.dialect.name == "postgresql":
            with engine.begin() as conn:
                # Quote the schema to avoid edge cases with names
                conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{settings.db_schema}"'))
        Base.metadata.create_all(bind=engine)

        if settings.seed_sample_data:
            with make_session_factory(engine).begin() as session:
                added = seed_products(session)
            if added:
                logger.info("Seeded %d sample products", added)
    except Exception:
        logger.exception("Database initialisation failed")
        raise


def get_session(request: Request):
    """
    FastAPI dependency: yields a DB session, commits on success, rolls back on error.
    """
    s: Session = request.app.state.session_factory()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
