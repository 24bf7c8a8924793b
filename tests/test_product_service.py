"""Tests for ProductService over the in-memory SQLite store.

These tests verify:
- Required-field validation with field-keyed errors
- Create, read, find, update and delete
- createdAt / updatedAt management
- Full-text search on name and description
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from catalog.exceptions import InvalidFilterError, ProductNotFoundError, ProductValidationError
from catalog.models import Product, ProductSearchHit
from catalog.repositories import SqliteProductRepository
from catalog.services import ProductService
from catalog.services import product_service as product_service_module

from .conftest import SEARCH_FIXTURE


class TestValidation:
    """Test validation on create."""

    @pytest.mark.asyncio
    async def test_valid_product_with_category(self, product_service, valid_product_data):
        """Test that a complete product is stored with every field intact."""
        saved = await product_service.create_product(valid_product_data)

        assert isinstance(saved, Product)
        assert saved.id
        assert saved.name == "Test Product"
        assert saved.price == 99.99
        assert saved.description == "Test Description"
        assert saved.category == "Electronics"

        print(f"Created product {saved.id}")

    @pytest.mark.asyncio
    async def test_missing_category_fails(self, product_service, valid_product_data):
        """Test that a missing category is reported against category."""
        del valid_product_data["category"]

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.create_product(valid_product_data)

        assert exc_info.value.has_error("category")
        assert list(exc_info.value.errors) == ["category"]

    @pytest.mark.asyncio
    async def test_empty_category_fails(self, product_service, valid_product_data):
        """Test that an empty category is rejected."""
        valid_product_data["category"] = ""

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.create_product(valid_product_data)

        assert exc_info.value.has_error("category")

    @pytest.mark.asyncio
    async def test_missing_name_fails_on_name(self, product_service, valid_product_data):
        """Test that a missing name is keyed by name and nothing else."""
        del valid_product_data["name"]

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.create_product(valid_product_data)

        assert exc_info.value.has_error("name")
        assert not exc_info.value.has_error("wrongField")

    @pytest.mark.asyncio
    async def test_whitespace_description_fails(self, product_service, valid_product_data):
        """Test that a blank description counts as empty."""
        valid_product_data["description"] = "   "

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.create_product(valid_product_data)

        assert exc_info.value.has_error("description")

    @pytest.mark.asyncio
    async def test_every_failing_field_is_reported(self, product_service):
        """Test that all missing fields are reported together."""
        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.create_product({"price": 5})

        assert set(exc_info.value.errors) == {"name", "description", "category"}

    @pytest.mark.asyncio
    async def test_string_price_is_coerced(self, product_service, valid_product_data):
        """Test that a numeric string price is stored as a number."""
        valid_product_data["price"] = "49.50"

        saved = await product_service.create_product(valid_product_data)

        assert saved.price == 49.5
        assert isinstance(saved.price, float)

    @pytest.mark.asyncio
    async def test_negative_price_is_accepted(self, product_service, valid_product_data):
        """Test that price has no range check."""
        valid_product_data["price"] = -10

        saved = await product_service.create_product(valid_product_data)

        assert saved.price == -10.0

    @pytest.mark.asyncio
    async def test_non_numeric_price_fails(self, product_service, valid_product_data):
        """Test that an uncoercible price is keyed by price."""
        valid_product_data["price"] = "cheap"

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.create_product(valid_product_data)

        assert exc_info.value.has_error("price")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", ["nan", "inf", "-inf", float("nan")])
    async def test_non_finite_price_fails(self, product_service, valid_product_data, price):
        """Test that NaN and infinities are rejected before reaching the store."""
        valid_product_data["price"] = price

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.create_product(valid_product_data)

        assert exc_info.value.errors.keys() == {"price"}
        assert await product_service.find_products() == []

    @pytest.mark.asyncio
    async def test_failed_create_stores_nothing(self, product_service, valid_product_data):
        """Test that a rejected product is not written."""
        valid_product_data["category"] = ""

        with pytest.raises(ProductValidationError):
            await product_service.create_product(valid_product_data)

        assert await product_service.find_products() == []


class TestCrudOperations:
    """Test create, read, find, update and delete."""

    @pytest.mark.asyncio
    async def test_create_and_read_back(self, product_service, valid_product_data):
        """Test that a created product can be read by id."""
        saved = await product_service.create_product(valid_product_data)

        found = await product_service.get_product(saved.id)

        assert found is not None
        assert found == saved
        assert found.category == "Electronics"

    @pytest.mark.asyncio
    async def test_get_unknown_id_returns_none(self, product_service):
        """Test that reading a missing id signals absence with None."""
        assert await product_service.get_product("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, product_service, valid_product_data):
        """Test that each create assigns a new id."""
        first = await product_service.create_product(valid_product_data)
        second = await product_service.create_product(valid_product_data)

        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_update_category(self, product_service, valid_product_data):
        """Test that an updated category persists."""
        product = await product_service.create_product(valid_product_data)

        updated = await product_service.update_product(product.id, {"category": "Home Appliances"})

        assert updated.category == "Home Appliances"
        stored = await product_service.get_product(product.id)
        assert stored.category == "Home Appliances"
        assert stored.name == product.name

    @pytest.mark.asyncio
    async def test_update_to_empty_category_with_validation_fails(self, product_service, valid_product_data):
        """Test that validated updates reject empty required fields and leave the record untouched."""
        product = await product_service.create_product(valid_product_data)

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.update_product(product.id, {"category": ""}, validate=True)

        assert exc_info.value.has_error("category")
        stored = await product_service.get_product(product.id)
        assert stored.category == "Electronics"
        assert stored.updated_at == product.updated_at

    @pytest.mark.asyncio
    async def test_update_without_validation_skips_required_rules(self, product_service, valid_product_data):
        """Test that validation on update is opt-in."""
        product = await product_service.create_product(valid_product_data)

        updated = await product_service.update_product(product.id, {"category": ""})

        assert updated.category == ""

    @pytest.mark.asyncio
    async def test_update_casts_price(self, product_service, valid_product_data):
        """Test that update values are cast even without validation."""
        product = await product_service.create_product(valid_product_data)

        updated = await product_service.update_product(product.id, {"price": "199.99"})

        assert updated.price == 199.99

    @pytest.mark.asyncio
    async def test_update_uncastable_price_fails(self, product_service, valid_product_data):
        """Test that a non-numeric price is rejected even without validation."""
        product = await product_service.create_product(valid_product_data)

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.update_product(product.id, {"price": "free"})

        assert exc_info.value.has_error("price")
        assert (await product_service.get_product(product.id)).price == 99.99

    @pytest.mark.asyncio
    async def test_update_non_finite_price_fails(self, product_service, valid_product_data):
        """Test that an infinite price is rejected on update, validated or not."""
        product = await product_service.create_product(valid_product_data)

        for validate in (False, True):
            with pytest.raises(ProductValidationError) as exc_info:
                await product_service.update_product(product.id, {"price": "inf"}, validate=validate)
            assert exc_info.value.has_error("price")

        assert (await product_service.get_product(product.id)).price == 99.99

    @pytest.mark.asyncio
    async def test_update_without_validation_trims_strings(self, product_service, valid_product_data):
        """Test that unvalidated updates are trimmed like created values."""
        product = await product_service.create_product(valid_product_data)

        updated = await product_service.update_product(product.id, {"name": "  Renamed  "})

        assert updated.name == "Renamed"
        assert [p.id for p in await product_service.find_products(name=" Renamed ")] == [product.id]

    @pytest.mark.asyncio
    async def test_update_ignores_immutable_fields(self, product_service, valid_product_data):
        """Test that id and createdAt cannot be changed through update."""
        product = await product_service.create_product(valid_product_data)

        updated = await product_service.update_product(
            product.id,
            {"id": "hijacked", "createdAt": "2000-01-01T00:00:00+00:00", "name": "Renamed"},
        )

        assert updated.id == product.id
        assert updated.created_at == product.created_at
        assert updated.name == "Renamed"

    @pytest.mark.asyncio
    async def test_update_unknown_id_raises(self, product_service):
        """Test that updating a missing id raises ProductNotFoundError."""
        with pytest.raises(ProductNotFoundError) as exc_info:
            await product_service.update_product("missing-id", {"name": "x"})

        assert exc_info.value.product_id == "missing-id"

    @pytest.mark.asyncio
    async def test_update_of_product_deleted_before_write_raises(self, valid_product_data):
        """Test a product removed between the read and the write of an update."""
        now = datetime.now(timezone.utc)
        stored = Product(id="gone", created_at=now, updated_at=now, **valid_product_data)
        repository = AsyncMock(spec=SqliteProductRepository)
        repository.get.return_value = stored.to_document()
        repository.update_fields.return_value = None
        service = ProductService(repository)

        with pytest.raises(ProductNotFoundError) as exc_info:
            await service.update_product("gone", {"name": "Renamed"})

        assert exc_info.value.product_id == "gone"
        repository.update_fields.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_product(self, product_service, valid_product_data):
        """Test deleting a product by id."""
        product = await product_service.create_product(valid_product_data)

        assert await product_service.delete_product(product.id) is True
        assert await product_service.get_product(product.id) is None
        assert await product_service.delete_product(product.id) is False

    @pytest.mark.asyncio
    async def test_delete_many_with_filter(self, seeded_service):
        """Test deleting only the products that match a filter."""
        deleted = await seeded_service.delete_many(category="Phones")

        assert deleted == 2
        remaining = await seeded_service.find_products()
        assert {p.name for p in remaining} == {"MacBook Pro", "Gaming Chair", "USB-C Cable"}

    @pytest.mark.asyncio
    async def test_delete_many_without_filter_clears_store(self, seeded_service):
        """Test that an unfiltered delete removes every product."""
        assert await seeded_service.delete_many() == len(SEARCH_FIXTURE)
        assert await seeded_service.find_products() == []

    @pytest.mark.asyncio
    async def test_find_products_by_equality(self, seeded_service):
        """Test equality filters, creation order and limit."""
        phones = await seeded_service.find_products(category="Phones")
        assert [p.name for p in phones] == ["iPhone 14", "Samsung Galaxy S23"]

        by_price = await seeded_service.find_products(price="199")
        assert [p.name for p in by_price] == ["Gaming Chair"]

        first_two = await seeded_service.find_products(limit=2)
        assert len(first_two) == 2

    @pytest.mark.asyncio
    async def test_find_products_unknown_field(self, product_service):
        """Test that filtering on a non-content field is refused."""
        with pytest.raises(InvalidFilterError, match="Cannot filter products on"):
            await product_service.find_products(wrongField="x")

    @pytest.mark.asyncio
    async def test_concurrent_updates_on_different_fields(self, product_service, valid_product_data):
        """Test that racing updates each commit their own fields."""
        product = await product_service.create_product(valid_product_data)

        await asyncio.gather(
            product_service.update_product(product.id, {"name": "Racing Name"}),
            product_service.update_product(product.id, {"price": 1.5}),
        )

        stored = await product_service.get_product(product.id)
        assert stored.name == "Racing Name"
        assert stored.price == 1.5

    @pytest.mark.asyncio
    async def test_concurrent_updates_on_same_field(self, product_service, valid_product_data):
        """Test that one of two racing writes to the same field wins."""
        product = await product_service.create_product(valid_product_data)

        await asyncio.gather(
            product_service.update_product(product.id, {"category": "A"}),
            product_service.update_product(product.id, {"category": "B"}),
        )

        stored = await product_service.get_product(product.id)
        assert stored.category in ("A", "B")


class TestInsertMany:
    """Test bulk insert."""

    @pytest.mark.asyncio
    async def test_insert_many(self, product_service):
        """Test that all products are stored with distinct ids."""
        products = await product_service.insert_many(SEARCH_FIXTURE)

        assert len(products) == 5
        assert len({p.id for p in products}) == 5
        assert len(await product_service.find_products()) == 5

    @pytest.mark.asyncio
    async def test_insert_many_rejects_whole_batch(self, product_service):
        """Test that one invalid item aborts the batch, keyed by its index."""
        items = [dict(item) for item in SEARCH_FIXTURE]
        del items[2]["category"]
        items[4]["name"] = ""

        with pytest.raises(ProductValidationError) as exc_info:
            await product_service.insert_many(items)

        assert set(exc_info.value.errors) == {"2.category", "4.name"}
        assert await product_service.find_products() == []


class TestTimestamps:
    """Test createdAt / updatedAt handling."""

    @pytest.mark.asyncio
    async def test_timestamps_set_on_create(self, product_service, valid_product_data):
        """Test that both timestamps exist and are equal after creation."""
        saved = await product_service.create_product(valid_product_data)

        assert saved.created_at is not None
        assert saved.updated_at is not None
        assert saved.created_at == saved.updated_at
        assert saved.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_update_changes_updated_at(self, product_service, valid_product_data):
        """Test that an update refreshes updatedAt and keeps createdAt."""
        saved = await product_service.create_product(valid_product_data)

        updated = await product_service.update_product(saved.id, {"price": 199.99})

        assert updated.updated_at > saved.updated_at
        assert updated.created_at == saved.created_at

    @pytest.mark.asyncio
    async def test_updated_at_advances_with_frozen_clock(self, product_service, valid_product_data, monkeypatch):
        """Test that updatedAt strictly advances even when the clock does not."""
        frozen = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        monkeypatch.setattr(product_service_module, "_utcnow", lambda: frozen)

        saved = await product_service.create_product(valid_product_data)
        first = await product_service.update_product(saved.id, {"name": "One"})
        second = await product_service.update_product(saved.id, {"name": "Two"})

        assert saved.updated_at == frozen
        assert first.updated_at > saved.updated_at
        assert second.updated_at > first.updated_at

    @pytest.mark.asyncio
    async def test_empty_update_still_touches_updated_at(self, product_service, valid_product_data):
        """Test that an update with no content fields refreshes updatedAt only."""
        saved = await product_service.create_product(valid_product_data)

        updated = await product_service.update_product(saved.id, {})

        assert updated.updated_at > saved.updated_at
        assert updated.name == saved.name


class TestSearch:
    """Test full-text search by name and description."""

    @pytest.mark.asyncio
    async def test_find_by_name(self, seeded_service):
        """Test that a name token finds exactly one product."""
        results = await seeded_service.search_products("iPhone", sort_by_score=True)

        assert len(results) == 1
        assert isinstance(results[0], ProductSearchHit)
        assert results[0].product.name == "iPhone 14"
        assert results[0].score > 0

    @pytest.mark.asyncio
    async def test_find_by_description(self, seeded_service):
        """Test that a description token matches case-insensitively."""
        results = await seeded_service.search_products("ergonomic")

        assert len(results) == 1
        assert results[0].product.name == "Gaming Chair"

    @pytest.mark.asyncio
    async def test_multiple_matches(self, seeded_service):
        """Test that every matching product is returned."""
        results = await seeded_service.search_products("Apple", sort_by_score=True)

        assert len(results) == 2
        names = [hit.product.name for hit in results]
        assert "iPhone 14" in names
        assert "MacBook Pro" in names

    @pytest.mark.asyncio
    async def test_no_matches_returns_empty_list(self, seeded_service):
        """Test that an unmatched token is not an error."""
        assert await seeded_service.search_products("nonexistent") == []

    @pytest.mark.asyncio
    async def test_blank_query_returns_empty_list(self, seeded_service):
        """Test that a query with no words matches nothing."""
        assert await seeded_service.search_products("  -- ") == []

    @pytest.mark.asyncio
    async def test_terms_are_ored_and_ranked(self, seeded_service):
        """Test that a product matching more terms ranks first."""
        results = await seeded_service.search_products("apple laptop", sort_by_score=True)

        assert [hit.product.name for hit in results] == ["MacBook Pro", "iPhone 14"]
        assert results[0].score > results[1].score

    @pytest.mark.asyncio
    async def test_stemmed_match(self, seeded_service):
        """Test that word forms match through stemming."""
        results = await seeded_service.search_products("gamer")

        assert [hit.product.name for hit in results] == ["Gaming Chair"]

    @pytest.mark.asyncio
    async def test_query_operators_are_literal(self, seeded_service):
        """Test that FTS syntax in user input does not raise."""
        results = await seeded_service.search_products('apple" OR NEAR(')

        assert {hit.product.name for hit in results} == {"iPhone 14", "MacBook Pro"}

    @pytest.mark.asyncio
    async def test_limit(self, seeded_service):
        """Test that limit caps the number of hits."""
        results = await seeded_service.search_products("apple", sort_by_score=True, limit=1)

        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_index_follows_updates_and_deletes(self, seeded_service):
        """Test that the search index tracks renamed and deleted products."""
        iphone = (await seeded_service.search_products("iphone"))[0].product

        await seeded_service.update_product(iphone.id, {"name": "Pixel 8", "description": "Google phone"})
        assert await seeded_service.search_products("iphone") == []
        assert [hit.product.id for hit in await seeded_service.search_products("pixel")] == [iphone.id]

        await seeded_service.delete_product(iphone.id)
        assert await seeded_service.search_products("pixel") == []
