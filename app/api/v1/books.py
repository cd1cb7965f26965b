"""Catalog endpoints: books, categories, gifts and shipping rates"""

from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from app.api.deps import get_catalog, require_admin
from app.models.book import Book
from app.schemas.book import (
    BookCreate,
    BookResponse,
    BookUpdate,
    CategoryCreate,
    CategoryResponse,
    GiftCategoryCreate,
    GiftCategoryResponse,
    GiftItemCreate,
    GiftItemResponse,
    ShippingRateResponse,
    ShippingRateUpsert,
)
from app.services.catalog import CatalogStore

router = APIRouter()
admin_router = APIRouter()


def _book_response(book: Book) -> BookResponse:
    return BookResponse(**book.model_dump())


@router.get("/books", response_model=List[BookResponse])
async def list_books(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category_id: Optional[str] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    catalog: CatalogStore = Depends(get_catalog)
):
    """
    List books with pagination and filters.
    """
    skip = (page - 1) * limit
    books = await catalog.list_books(category_id=category_id, featured=featured, search=search, skip=skip, limit=limit)
    return [_book_response(book) for book in books]


@router.get("/books/{book_id}", response_model=BookResponse)
async def get_book(book_id: str, catalog: CatalogStore = Depends(get_catalog)):
    """
    Get book by ID.
    """
    return _book_response(await catalog.get_book(book_id))


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(catalog: CatalogStore = Depends(get_catalog)):
    return [CategoryResponse(**category.model_dump()) for category in await catalog.list_categories()]


@router.get("/gift-categories", response_model=List[GiftCategoryResponse])
async def list_gift_categories(catalog: CatalogStore = Depends(get_catalog)):
    """
    List active gift categories.
    """
    categories = await catalog.list_gift_categories()
    return [GiftCategoryResponse(**category.model_dump()) for category in categories]


@router.get("/gift-items", response_model=List[GiftItemResponse])
async def list_gift_items(
    category_id: Optional[str] = None,
    catalog: CatalogStore = Depends(get_catalog)
):
    """
    List active gift items, optionally for one gift category.
    """
    items = await catalog.list_gift_items(category_id=category_id)
    return [GiftItemResponse(**item.model_dump()) for item in items]


# Admin

@admin_router.post("/books", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    current_user: dict = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog)
):
    """
    Create a new book (Admin only).
    """
    return _book_response(await catalog.create_book(book_data.model_dump()))


@admin_router.put("/books/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: str,
    book_data: BookUpdate,
    current_user: dict = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog)
):
    """
    Update a book (Admin only). Price changes never affect placed orders.
    """
    book = await catalog.update_book(book_id, book_data.model_dump(exclude_unset=True))
    return _book_response(book)


@admin_router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    current_user: dict = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog)
):
    category = await catalog.create_category(category_data.name, category_data.slug, category_data.description)
    return CategoryResponse(**category.model_dump())


@admin_router.post("/gift-categories", response_model=GiftCategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_gift_category(
    category_data: GiftCategoryCreate,
    current_user: dict = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog)
):
    category = await catalog.create_gift_category(category_data.model_dump())
    return GiftCategoryResponse(**category.model_dump())


@admin_router.post("/gift-items", response_model=GiftItemResponse, status_code=status.HTTP_201_CREATED)
async def create_gift_item(
    item_data: GiftItemCreate,
    current_user: dict = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog)
):
    item = await catalog.create_gift_item(item_data.model_dump())
    return GiftItemResponse(**item.model_dump())


@admin_router.put("/shipping-rates/{country_code}", response_model=ShippingRateResponse)
async def upsert_shipping_rate(
    country_code: str,
    rate_data: ShippingRateUpsert,
    current_user: dict = Depends(require_admin),
    catalog: CatalogStore = Depends(get_catalog)
):
    """
    Create or replace the shipping rate for a country (Admin only).
    """
    rate = await catalog.upsert_shipping_rate(country_code, rate_data.model_dump())
    return ShippingRateResponse(**rate.model_dump())
