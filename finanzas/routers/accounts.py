import logging

from fastapi import APIRouter, Depends, HTTPException

from finanzas.dependencies import get_storage, require_auth
from finanzas.models.schemas import Account, AccountCreate, AccountUpdate
from finanzas.storage.base import Storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["accounts"])


async def _owned_account(account_id: int, user_id: int, storage: Storage) -> Account:
    account = await storage.get_account(account_id)
    if not account or account.user_id != user_id:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.get("/accounts", response_model=list[Account])
async def get_accounts(user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)):
    return await storage.list_accounts_by_user(user_id)


@router.post("/accounts", response_model=Account, status_code=201)
async def add_account(
    account: AccountCreate, user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)
):
    created = await storage.create_account(account, user_id=user_id)
    logger.info(f"Account {created.id} created for user {user_id}")
    return created


@router.put("/accounts/{account_id}", response_model=Account)
async def update_account(
    account_id: int,
    account_data: AccountUpdate,
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    await _owned_account(account_id, user_id, storage)

    account = await storage.update_account(account_id, account_data)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.delete("/accounts/{account_id}")
async def delete_account(
    account_id: int, user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)
):
    await _owned_account(account_id, user_id, storage)

    # Transactions posted against it keep the dangling account id
    if not await storage.delete_account(account_id):
        raise HTTPException(status_code=404, detail="Account not found")
    return {"status": "deleted"}
