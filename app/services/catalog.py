"""Catalog store: books, categories, gift items and shipping rates"""

from decimal import Decimal
from typing import List, Optional
import logging
import re

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import BookNotFound, GiftNotFound, ValidationError
from app.models.book import Book, Category, GiftCategory, GiftItem, ShippingRate
from app.models.common import quantize_money, to_mongo
from app.utils.dates import utcnow
from app.utils.validators import to_object_id, validate_object_id

logger = logging.getLogger(__name__)


class CatalogStore:
    """Read-mostly access to catalog records, plus the admin CRUD around them"""

    def __init__(self, db: AsyncIOMotorDatabase, default_shipping_cost: Decimal = Decimal("0")):
        self.db = db
        self.default_shipping_cost = quantize_money(default_shipping_cost)

    # Books

    async def list_books(
        self,
        category_id: Optional[str] = None,
        featured: Optional[bool] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Book]:
        query = {}
        if category_id:
            query["category_id"] = category_id
        if featured is not None:
            query["featured"] = featured
        if search:
            pattern = re.escape(search.strip())
            query["$or"] = [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"author": {"$regex": pattern, "$options": "i"}},
            ]

        cursor = self.db.books.find(query).sort("created_at", -1).skip(skip).limit(limit)
        return [Book.model_validate(doc) for doc in await cursor.to_list(length=limit)]

    async def get_book(self, book_id: str) -> Book:
        if not validate_object_id(book_id):
            raise BookNotFound(book_id)
        doc = await self.db.books.find_one({"_id": to_object_id(book_id)})
        if not doc:
            raise BookNotFound(book_id)
        return Book.model_validate(doc)

    async def create_book(self, data: dict) -> Book:
        if data.get("category_id"):
            await self._require_category(data["category_id"])
        book = Book(**data)
        doc = to_mongo(book.model_dump(by_alias=True, exclude={"id"}))
        result = await self.db.books.insert_one(doc)
        book.id = str(result.inserted_id)
        logger.info(f"Book created: {book.id} ({book.title})")
        return book

    async def update_book(self, book_id: str, changes: dict) -> Book:
        """Apply an admin edit; the only path besides order creation that touches stock"""
        changes = {k: v for k, v in changes.items() if v is not None}
        if changes.get("category_id"):
            await self._require_category(changes["category_id"])
        if "stock" in changes and changes["stock"] < 0:
            raise ValidationError("Stock cannot be negative")

        changes["updated_at"] = utcnow()
        doc = await self.db.books.find_one_and_update(
            {"_id": to_object_id(book_id, "book ID")},
            {"$set": to_mongo(changes)},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            raise BookNotFound(book_id)
        logger.info(f"Book updated: {book_id} ({', '.join(sorted(changes))})")
        return Book.model_validate(doc)

    # Categories

    async def list_categories(self) -> List[Category]:
        cursor = self.db.categories.find().sort("name", 1)
        return [Category.model_validate(doc) for doc in await cursor.to_list(length=None)]

    async def create_category(self, name: str, slug: str, description: Optional[str] = None) -> Category:
        if await self.db.categories.find_one({"slug": slug}):
            raise ValidationError(f"Category slug already exists: {slug}")
        category = Category(name=name, slug=slug, description=description)
        try:
            result = await self.db.categories.insert_one(category.model_dump(by_alias=True, exclude={"id"}))
        except DuplicateKeyError:
            raise ValidationError(f"Category slug already exists: {slug}")
        category.id = str(result.inserted_id)
        return category

    async def _require_category(self, category_id: str):
        if not validate_object_id(category_id) or not await self.db.categories.find_one({"_id": to_object_id(category_id)}):
            raise ValidationError(f"Category not found: {category_id}")

    # Gifts

    async def list_gift_categories(self, active_only: bool = True) -> List[GiftCategory]:
        query = {"is_active": True} if active_only else {}
        cursor = self.db.gift_categories.find(query).sort("sort_order", 1)
        return [GiftCategory.model_validate(doc) for doc in await cursor.to_list(length=None)]

    async def list_gift_items(self, category_id: Optional[str] = None, active_only: bool = True) -> List[GiftItem]:
        query = {}
        if active_only:
            query["is_active"] = True
        if category_id:
            query["category_id"] = category_id
        cursor = self.db.gift_items.find(query).sort("sort_order", 1)
        return [GiftItem.model_validate(doc) for doc in await cursor.to_list(length=None)]

    async def get_active_gift(self, gift_id: str) -> GiftItem:
        if not validate_object_id(gift_id):
            raise GiftNotFound(gift_id)
        doc = await self.db.gift_items.find_one({"_id": to_object_id(gift_id), "is_active": True})
        if not doc:
            raise GiftNotFound(gift_id)
        return GiftItem.model_validate(doc)

    async def create_gift_category(self, data: dict) -> GiftCategory:
        category = GiftCategory(**data)
        result = await self.db.gift_categories.insert_one(
            to_mongo(category.model_dump(by_alias=True, exclude={"id"}))
        )
        category.id = str(result.inserted_id)
        return category

    async def create_gift_item(self, data: dict) -> GiftItem:
        category_id = data.get("category_id")
        if not validate_object_id(category_id) or not await self.db.gift_categories.find_one(
            {"_id": to_object_id(category_id)}
        ):
            raise ValidationError(f"Gift category not found: {category_id}")
        item = GiftItem(**data)
        result = await self.db.gift_items.insert_one(to_mongo(item.model_dump(by_alias=True, exclude={"id"})))
        item.id = str(result.inserted_id)
        return item

    # Shipping

    async def upsert_shipping_rate(self, country_code: str, data: dict) -> ShippingRate:
        country_code = country_code.upper()
        rate = ShippingRate(country_code=country_code, **data)
        if rate.min_delivery_days > rate.max_delivery_days:
            raise ValidationError("min_delivery_days cannot exceed max_delivery_days")

        if rate.is_default:
            # Only one default rate
            await self.db.shipping_rates.update_many(
                {"is_default": True, "country_code": {"$ne": country_code}},
                {"$set": {"is_default": False}},
            )
        await self.db.shipping_rates.update_one(
            {"country_code": country_code},
            {"$set": to_mongo(rate.model_dump(exclude={"id"}))},
            upsert=True,
        )
        logger.info(f"Shipping rate for {country_code} set to {rate.shipping_cost}")
        return rate

    async def shipping_cost_for(self, country: str) -> Decimal:
        """Shipping cost for a destination: country rate, else default rate, else the configured flat cost"""
        doc = await self.db.shipping_rates.find_one({"country_code": country.upper(), "is_active": True})
        if not doc:
            doc = await self.db.shipping_rates.find_one({"is_default": True, "is_active": True})
        if not doc:
            return self.default_shipping_cost
        return ShippingRate.model_validate(doc).shipping_cost
