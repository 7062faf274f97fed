import sqlite3
from datetime import datetime, timezone

import pytest

from neonex.product import (
    Product,
    ProductNotFoundError,
    ProductRepository,
    ProductService,
    seed_products,
)

FIXED = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def repository():
    connection = sqlite3.connect(":memory:")
    repo = ProductRepository(connection, clock=lambda: FIXED)
    repo.create_schema()
    yield repo
    connection.close()


@pytest.fixture
def service(repository):
    return ProductService(repository)


def test_create_and_find_round_trip(repository):
    product = Product(name="Lamp", description="Desk lamp")
    repository.create(product)
    assert product.id is not None
    assert repository.find_by_id(product.id) == product
    assert repository.find_by_name("Lamp") == product


def test_find_missing_returns_none(repository):
    assert repository.find_by_id(42) is None
    assert repository.find_by_name("nothing") is None


def test_delete_is_soft(repository):
    product = Product(name="Chair")
    repository.create(product)
    repository.delete(product)
    assert product.deleted_at == FIXED
    assert repository.find_by_id(product.id) is None
    assert repository.find_all() == []


def test_find_active(repository):
    active = Product(name="On", is_active=True)
    inactive = Product(name="Off", is_active=False)
    repository.create(active)
    repository.create(inactive)
    assert [p.name for p in repository.find_active()] == ["On"]


def test_service_update_copies_fields(service, repository):
    product = Product(name="Old", description="old text")
    service.create(product)
    updated = service.update(product.id, Product(name="New", description="new text", is_active=False))
    stored = repository.find_by_id(product.id)
    assert stored == updated
    assert (stored.name, stored.description, stored.is_active) == ("New", "new text", False)


def test_service_missing_product_raises(service):
    with pytest.raises(ProductNotFoundError, match="product not found"):
        service.get_by_id(5)
    with pytest.raises(ProductNotFoundError):
        service.update(5, Product(name="x"))
    with pytest.raises(ProductNotFoundError):
        service.delete(5)


def test_service_delete(service):
    product = Product(name="Gone")
    service.create(product)
    service.delete(product.id)
    assert service.get_all() == []


def test_search_returns_active_products(service):
    service.create(Product(name="Visible"))
    service.create(Product(name="Hidden", is_active=False))
    assert [p.name for p in service.search("anything")] == ["Visible"]


def test_seed_products_once(repository):
    created = seed_products(repository)
    assert [p.name for p in repository.find_all()] == ["Sample 1", "Sample 2", "Sample 3"]
    assert [p.name for p in repository.find_active()] == ["Sample 1", "Sample 2"]
    assert seed_products(repository) == []
    assert len(repository.find_all()) == len(created)