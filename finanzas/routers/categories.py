from fastapi import APIRouter, Depends, HTTPException, Query

from finanzas.dependencies import get_storage, require_auth
from finanzas.models.schemas import Category, CategoryCreate, CategoryUpdate, TransactionType
from finanzas.storage.base import Storage

router = APIRouter(tags=["categories"], dependencies=[Depends(require_auth)])


@router.get("/categories", response_model=list[Category])
async def get_categories(type: TransactionType | None = Query(None), storage: Storage = Depends(get_storage)):
    categories = await storage.list_categories()
    if type:
        categories = [c for c in categories if c.type == type]
    return categories


@router.post("/categories", response_model=Category, status_code=201)
async def add_category(category: CategoryCreate, storage: Storage = Depends(get_storage)):
    return await storage.create_category(category)


@router.put("/categories/{cat_id}", response_model=Category)
async def update_category(cat_id: int, category_data: CategoryUpdate, storage: Storage = Depends(get_storage)):
    category = await storage.update_category(cat_id, category_data)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@router.delete("/categories/{cat_id}")
async def delete_category(cat_id: int, storage: Storage = Depends(get_storage)):
    # Transactions keep the dangling id and show up as uncategorized
    if not await storage.delete_category(cat_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"status": "deleted"}
