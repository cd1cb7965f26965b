"""Cart aggregate: per-owner book lines plus at most one free gift"""

from decimal import Decimal
from typing import Optional
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.exceptions import BookNotFound, CartItemNotFound, InsufficientStock, ValidationError
from app.models.common import quantize_money
from app.models.order import Cart, CartGift, CartLine
from app.schemas.cart import CartLineResponse, CartResponse
from app.services.catalog import CatalogStore
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def guest_owner(session_id: str) -> str:
    """Cart owner key for a guest session; never collides with a user id"""
    return f"session:{session_id}"


class CartService:
    """
    Cart operations keyed by owner (a user id or a guest session key).

    A stored line always has quantity >= 1, and the gift is dropped whenever
    the cart is left without book lines.
    """

    def __init__(self, db: AsyncIOMotorDatabase, catalog: CatalogStore):
        self.db = db
        self.catalog = catalog

    async def load(self, owner: str) -> Cart:
        doc = await self.db.carts.find_one({"owner": owner})
        if not doc:
            return Cart(owner=owner)
        return Cart.model_validate(doc)

    async def _save(self, cart: Cart) -> Cart:
        if not cart.items:
            cart.gift = None
        now = utcnow()
        cart.updated_at = now
        await self.db.carts.update_one(
            {"owner": cart.owner},
            {
                "$set": {
                    "items": [line.model_dump() for line in cart.items],
                    "gift": cart.gift.model_dump() if cart.gift else None,
                    "updated_at": now,
                },
                "$setOnInsert": {"created_at": cart.created_at},
            },
            upsert=True,
        )
        return cart

    async def get_cart(self, owner: str) -> CartResponse:
        cart = await self.load(owner)
        lines = []
        subtotal = Decimal("0")
        for line in cart.items:
            try:
                book = await self.catalog.get_book(line.book_id)
            except BookNotFound:
                logger.warning(f"Cart {owner} references missing book {line.book_id}")
                continue
            line_total = book.price * line.quantity
            subtotal += line_total
            lines.append(
                CartLineResponse(
                    book_id=line.book_id,
                    title=book.title,
                    author=book.author,
                    image_url=book.image_url,
                    price=book.price,
                    stock=book.stock,
                    quantity=line.quantity,
                    subtotal=line_total,
                )
            )

        return CartResponse(
            owner=owner,
            items=lines,
            gift=cart.gift if lines else None,
            item_count=sum(line.quantity for line in lines),
            subtotal=quantize_money(subtotal),
        )

    async def add_item(self, owner: str, book_id: str, quantity: int = 1) -> CartResponse:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        book = await self.catalog.get_book(book_id)
        cart = await self.load(owner)

        line = self._find_line(cart, book_id)
        new_quantity = quantity + (line.quantity if line else 0)
        if new_quantity > book.stock:
            raise InsufficientStock(book_id, book.title, book.stock, new_quantity)

        if line:
            line.quantity = new_quantity
        else:
            cart.items.append(CartLine(book_id=book_id, quantity=new_quantity))
        await self._save(cart)
        return await self.get_cart(owner)

    async def set_quantity(self, owner: str, book_id: str, quantity: int) -> CartResponse:
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")
        cart = await self.load(owner)
        line = self._find_line(cart, book_id)
        if not line:
            raise CartItemNotFound(book_id)

        if quantity == 0:
            cart.items.remove(line)
        else:
            book = await self.catalog.get_book(book_id)
            if quantity > book.stock:
                raise InsufficientStock(book_id, book.title, book.stock, quantity)
            line.quantity = quantity
        await self._save(cart)
        return await self.get_cart(owner)

    async def remove_item(self, owner: str, book_id: str) -> CartResponse:
        cart = await self.load(owner)
        line = self._find_line(cart, book_id)
        if not line:
            raise CartItemNotFound(book_id)
        cart.items.remove(line)
        await self._save(cart)
        return await self.get_cart(owner)

    async def clear(self, owner: str):
        await self.db.carts.delete_one({"owner": owner})

    async def select_gift(self, owner: str, gift_id: str) -> CartResponse:
        cart = await self.load(owner)
        if not cart.items:
            raise ValidationError("Add a book to your cart before choosing a gift")
        gift = await self.catalog.get_active_gift(gift_id)
        cart.gift = CartGift(gift_id=gift.id, name=gift.name, type=gift.type.value, image_url=gift.image_url)
        await self._save(cart)
        return await self.get_cart(owner)

    async def remove_gift(self, owner: str) -> CartResponse:
        cart = await self.load(owner)
        cart.gift = None
        if cart.items:
            await self._save(cart)
        return await self.get_cart(owner)

    async def merge_guest_cart(self, session_id: str, user_id: str) -> CartResponse:
        """Fold a guest session's cart into the user's cart after sign-in"""
        guest = await self.load(guest_owner(session_id))
        if not guest.items:
            return await self.get_cart(user_id)

        cart = await self.load(user_id)
        for guest_line in guest.items:
            line = self._find_line(cart, guest_line.book_id)
            if line:
                line.quantity += guest_line.quantity
            else:
                cart.items.append(guest_line)
        if cart.gift is None:
            cart.gift = guest.gift

        await self._save(cart)
        await self.clear(guest.owner)
        logger.info(f"Merged guest cart {session_id} into user {user_id}")
        return await self.get_cart(user_id)

    @staticmethod
    def _find_line(cart: Cart, book_id: str) -> Optional[CartLine]:
        for line in cart.items:
            if line.book_id == book_id:
                return line
        return None
