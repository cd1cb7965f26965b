"""Tests for the cart aggregate."""

from decimal import Decimal

import pytest
from bson import ObjectId

from app.core.exceptions import BookNotFound, CartItemNotFound, GiftNotFound, InsufficientStock, ValidationError
from app.services import guest_owner

OWNER = "user-1"


@pytest.fixture
async def gift(catalog):
    category = await catalog.create_gift_category({"name": "Notebooks", "type": "notebook"})
    return await catalog.create_gift_item({"category_id": category.id, "name": "A5 notebook", "type": "notebook"})


class TestCartItems:
    async def test_adding_twice_merges_the_line(self, carts, add_book):
        book = await add_book(price="10.00", stock=5)

        await carts.add_item(OWNER, book.id, 1)
        cart = await carts.add_item(OWNER, book.id, 2)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3
        assert cart.item_count == 3
        assert cart.subtotal == Decimal("30.00")

    async def test_cannot_add_more_than_stock(self, carts, add_book):
        book = await add_book(stock=2)
        await carts.add_item(OWNER, book.id, 2)

        with pytest.raises(InsufficientStock):
            await carts.add_item(OWNER, book.id, 1)

    async def test_unknown_book(self, carts):
        with pytest.raises(BookNotFound):
            await carts.add_item(OWNER, str(ObjectId()), 1)

    async def test_set_quantity_zero_removes_the_line(self, carts, add_book):
        book = await add_book()
        await carts.add_item(OWNER, book.id, 2)

        cart = await carts.set_quantity(OWNER, book.id, 0)

        assert cart.items == []
        assert cart.subtotal == Decimal("0.00")

    async def test_set_quantity_on_missing_line(self, carts, add_book):
        book = await add_book()

        with pytest.raises(CartItemNotFound):
            await carts.set_quantity(OWNER, book.id, 1)

    async def test_negative_quantity(self, carts, add_book):
        book = await add_book()
        await carts.add_item(OWNER, book.id, 1)

        with pytest.raises(ValidationError):
            await carts.set_quantity(OWNER, book.id, -1)

    async def test_deleted_book_is_skipped(self, db, carts, add_book):
        kept = await add_book(title="Dune")
        gone = await add_book(title="Emma")
        await carts.add_item(OWNER, kept.id, 1)
        await carts.add_item(OWNER, gone.id, 1)
        await db.books.delete_one({"_id": ObjectId(gone.id)})

        cart = await carts.get_cart(OWNER)

        assert [line.book_id for line in cart.items] == [kept.id]


class TestCartGift:
    async def test_gift_requires_a_book(self, carts, gift):
        with pytest.raises(ValidationError):
            await carts.select_gift(OWNER, gift.id)

    async def test_select_gift(self, carts, add_book, gift):
        book = await add_book()
        await carts.add_item(OWNER, book.id, 1)

        cart = await carts.select_gift(OWNER, gift.id)

        assert cart.gift.gift_id == gift.id
        assert cart.gift.type == "notebook"

    async def test_selecting_again_replaces_the_gift(self, catalog, carts, add_book, gift):
        other = await catalog.create_gift_item({"category_id": gift.category_id, "name": "Pocket notebook", "type": "notebook"})
        book = await add_book()
        await carts.add_item(OWNER, book.id, 1)
        await carts.select_gift(OWNER, gift.id)

        cart = await carts.select_gift(OWNER, other.id)

        assert cart.gift.gift_id == other.id

    async def test_inactive_gift(self, db, carts, add_book, gift):
        book = await add_book()
        await carts.add_item(OWNER, book.id, 1)
        await db.gift_items.update_one({"_id": ObjectId(gift.id)}, {"$set": {"is_active": False}})

        with pytest.raises(GiftNotFound):
            await carts.select_gift(OWNER, gift.id)

    async def test_gift_dropped_with_last_book(self, carts, add_book, gift):
        book = await add_book()
        await carts.add_item(OWNER, book.id, 1)
        await carts.select_gift(OWNER, gift.id)

        await carts.remove_item(OWNER, book.id)

        assert (await carts.load(OWNER)).gift is None


class TestGuestCart:
    async def test_merge_into_user_cart(self, db, carts, add_book):
        shared = await add_book(title="Dune", stock=5)
        guest_only = await add_book(title="Emma", stock=5)
        await carts.add_item(guest_owner("abc"), shared.id, 1)
        await carts.add_item(guest_owner("abc"), guest_only.id, 2)
        await carts.add_item(OWNER, shared.id, 1)

        cart = await carts.merge_guest_cart("abc", OWNER)

        quantities = {line.book_id: line.quantity for line in cart.items}
        assert quantities == {shared.id: 2, guest_only.id: 2}
        assert await db.carts.count_documents({"owner": guest_owner("abc")}) == 0

    async def test_guest_key_never_matches_a_user(self):
        assert guest_owner("user-1") == "session:user-1"
