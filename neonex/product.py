"""Products: the record, its SQLite repository, service and sample seeder."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

_SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at REAL,
    updated_at REAL,
    deleted_at REAL,
    name TEXT NOT NULL,
    description TEXT,
    is_active INTEGER DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_products_deleted_at ON products(deleted_at);
"""

_COLUMNS = "id, created_at, updated_at, deleted_at, name, description, is_active"
_SELECT = f"SELECT {_COLUMNS} FROM products WHERE deleted_at IS NULL"


class ProductNotFoundError(LookupError):
    """Raised when a product does not exist."""


@dataclass
class Product:
    name: str = ""
    description: str = ""
    is_active: bool = True
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime | None) -> float | None:
    return None if value is None else value.timestamp()


def _dt(value: float | None) -> datetime | None:
    return None if value is None else datetime.fromtimestamp(value, timezone.utc)


def _from_row(row: tuple[Any, ...]) -> Product:
    pid, created_at, updated_at, deleted_at, name, description, is_active = row
    return Product(
        id=pid,
        name=name,
        description=description or "",
        is_active=bool(is_active),
        created_at=_dt(created_at),
        updated_at=_dt(updated_at),
        deleted_at=_dt(deleted_at),
    )


class ProductRepository:
    """Stores products in SQLite; deletion is soft."""

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._conn = connection
        self._clock = clock

    def create_schema(self) -> None:
        self._conn.executescript(_SCHEMA)

    def find_all(self) -> list[Product]:
        rows = self._conn.execute(f"{_SELECT} ORDER BY id").fetchall()
        return [_from_row(row) for row in rows]

    def find_by_id(self, product_id: int) -> Product | None:
        row = self._conn.execute(f"{_SELECT} AND id = ?", (product_id,)).fetchone()
        return None if row is None else _from_row(row)

    def find_by_name(self, name: str) -> Product | None:
        row = self._conn.execute(
            f"{_SELECT} AND name = ? ORDER BY id LIMIT 1", (name,)
        ).fetchone()
        return None if row is None else _from_row(row)

    def find_active(self) -> list[Product]:
        rows = self._conn.execute(f"{_SELECT} AND is_active = 1 ORDER BY id").fetchall()
        return [_from_row(row) for row in rows]

    def create(self, product: Product) -> None:
        """Insert ``product`` and fill in its id and timestamps."""
        now = self._clock()
        if product.created_at is None:
            product.created_at = now
        product.updated_at = now
        with self._conn:
            cursor = self._conn.execute(
                f"INSERT INTO products ({_COLUMNS}) VALUES (NULL, ?, ?, NULL, ?, ?, ?)",
                (
                    _ts(product.created_at),
                    _ts(product.updated_at),
                    product.name,
                    product.description,
                    int(product.is_active),
                ),
            )
        product.id = cursor.lastrowid

    def update(self, product: Product) -> None:
        """Save the fields of an existing product."""
        if product.id is None:
            raise ValueError("product has no id")
        product.updated_at = self._clock()
        with self._conn:
            self._conn.execute(
                "UPDATE products SET name = ?, description = ?, is_active = ?, updated_at = ? "
                "WHERE id = ?",
                (
                    product.name,
                    product.description,
                    int(product.is_active),
                    _ts(product.updated_at),
                    product.id,
                ),
            )

    def delete(self, product: Product) -> None:
        """Mark ``product`` deleted."""
        if product.id is None:
            raise ValueError("product has no id")
        product.deleted_at = self._clock()
        with self._conn:
            self._conn.execute(
                "UPDATE products SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (_ts(product.deleted_at), product.id),
            )


class ProductService:
    """Product operations on top of a ``ProductRepository``."""

    def __init__(self, repository: ProductRepository) -> None:
        self.repository = repository

    def get_all(self) -> list[Product]:
        return self.repository.find_all()

    def get_by_id(self, product_id: int) -> Product:
        product = self.repository.find_by_id(product_id)
        if product is None:
            raise ProductNotFoundError("product not found")
        return product

    def create(self, product: Product) -> None:
        self.repository.create(product)

    def update(self, product_id: int, product: Product) -> Product:
        """Copy name, description and active flag onto the stored product."""
        existing = self.get_by_id(product_id)
        existing.name = product.name
        existing.description = product.description
        existing.is_active = product.is_active
        self.repository.update(existing)
        return existing

    def delete(self, product_id: int) -> None:
        self.repository.delete(self.get_by_id(product_id))

    def search(self, query: str) -> list[Product]:
        """Return the active products; the query text is not used for matching."""
        return self.repository.find_active()


def seed_products(repository: ProductRepository) -> list[Product]:
    """Create sample products when there are none; returns what was created."""
    if repository.find_all():
        return []
    samples = [
        Product(name="Sample 1", description="First sample product", is_active=True),
        Product(name="Sample 2", description="Second sample product", is_active=True),
        Product(name="Sample 3", description="Third sample product", is_active=False),
    ]
    for product in samples:
        repository.create(product)
    return samples