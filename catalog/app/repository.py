"""Storage access for the products table.

Update and delete are single statements; a rowcount of zero means the id is
absent (including the case where another request removed it first), and is
reported to the caller as ``None`` / ``False`` rather than an exception.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from .models import Product
from .schemas import ProductIn

LIKE_ESCAPE = "\\"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _like_pattern(term: str) -> str:
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def list_products(
    session: Session, search: Optional[str], page: int, page_size: int
) -> Tuple[List[Product], int]:
    """Return one page ordered by id, plus the matching count before paging."""
    stmt = select(Product)
    if search:
        pattern = _like_pattern(search)
        stmt = stmt.where(or_(
            Product.name.ilike(pattern, escape=LIKE_ESCAPE),
            Product.description.ilike(pattern, escape=LIKE_ESCAPE),
        ))

    total = session.scalar(select(func.count()).select_from(stmt.subquery()))
    rows = session.execute(
        stmt.order_by(Product.id).offset((page - 1) * page_size).limit(page_size)
    ).scalars().all()
    return list(rows), total or 0


def get_product(session: Session, pid: int) -> Optional[Product]:
    return session.get(Product, pid)


def create_product(session: Session, payload: ProductIn) -> Product:
    now = utcnow()
    p = Product(
        name=payload.name,
        description=payload.description,
        price=payload.price,
        image=payload.image,
        created_at=now,
        updated_at=now,
    )
    session.add(p)
    session.flush()
    return p


def update_product(session: Session, pid: int, payload: ProductIn) -> Optional[Product]:
    res = session.execute(
        update(Product)
        .where(Product.id == pid)
        .values(
            name=payload.name,
            description=payload.description,
            price=payload.price,
            image=payload.image,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return None
    return session.get(Product, pid, populate_existing=True)


def delete_product(session: Session, pid: int) -> bool:
    res = session.execute(
        delete(Product)
        .where(Product.id == pid)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1
