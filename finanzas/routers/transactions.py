import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from finanzas.dependencies import get_storage, require_auth
from finanzas.models.schemas import (
    LoanDisbursementRequest,
    LoanDisbursementResponse,
    LoanPaymentRequest,
    LoanPaymentResponse,
    PostingResponse,
    Transaction,
    TransactionCreate,
    TransactionDetail,
    TransactionUpdate,
    TransferRequest,
    TransferResponse,
)
from finanzas.services.ledger import LedgerError, LedgerService
from finanzas.storage.base import PostingResult, Storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transactions"])


# --- Helpers ---
def _posting_response(result: PostingResult) -> PostingResponse:
    return PostingResponse(transaction=result.transaction, posting=result.status, reversal=result.reversal)


async def _owned_transaction(tx_id: int, user_id: int, storage: Storage) -> Transaction:
    tx = await storage.get_transaction(tx_id)
    if not tx or tx.user_id != user_id:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx


async def _check_account_access(account_id: int | None, user_id: int, storage: Storage) -> None:
    """
    Rejects postings against another user's account. A missing account is
    let through: the write succeeds and reports the posting as account_missing.
    """
    if account_id is None:
        return
    account = await storage.get_account(account_id)
    if account and account.user_id != user_id:
        raise HTTPException(status_code=404, detail="Account not found")


# --- Endpoints ---
@router.get("/transactions", response_model=list[TransactionDetail])
async def get_transactions(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    if start_date and end_date:
        transactions = await storage.list_transactions_by_date_range(start_date, end_date, user_id=user_id)
    else:
        transactions = await storage.list_transactions_by_user(user_id)

    # Weak references: dangling ids resolve to None
    categories = {c.id: c for c in await storage.list_categories()}
    accounts = {a.id: a for a in await storage.list_accounts_by_user(user_id)}

    return [
        TransactionDetail(
            **tx.model_dump(),
            category=categories.get(tx.category_id),
            account=accounts.get(tx.account_id),
        )
        for tx in transactions
    ]


@router.get("/transactions/{tx_id}", response_model=Transaction)
async def get_transaction(tx_id: int, user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)):
    return await _owned_transaction(tx_id, user_id, storage)


@router.post("/transactions", response_model=PostingResponse, status_code=201)
async def add_transaction(
    tx: TransactionCreate,
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    await _check_account_access(tx.account_id, user_id, storage)

    result = await storage.create_transaction(tx, user_id=user_id)
    logger.info(f"Transaction {result.transaction.id} created for user {user_id} ({result.status.value})")
    return _posting_response(result)


@router.put("/transactions/{tx_id}", response_model=PostingResponse)
async def update_transaction(
    tx_id: int,
    update_data: TransactionUpdate,
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    await _owned_transaction(tx_id, user_id, storage)
    if "account_id" in update_data.model_fields_set:
        await _check_account_access(update_data.account_id, user_id, storage)

    result = await storage.update_transaction(tx_id, update_data)
    if not result:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return _posting_response(result)


@router.delete("/transactions/{tx_id}")
async def delete_transaction(
    tx_id: int, user_id: int = Depends(require_auth), storage: Storage = Depends(get_storage)
):
    await _owned_transaction(tx_id, user_id, storage)

    if not await storage.delete_transaction(tx_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"status": "deleted"}


# --- Transfers & Loan Payments ---
@router.post("/transfers", response_model=TransferResponse, status_code=201)
async def transfer_between_accounts(
    req: TransferRequest,
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    try:
        outgoing, incoming = await LedgerService(storage).transfer(req, user_id)
    except LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return TransferResponse(outgoing=_posting_response(outgoing), incoming=_posting_response(incoming))


@router.post("/loan-payments", response_model=LoanPaymentResponse, status_code=201)
async def pay_loan(
    req: LoanPaymentRequest,
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    try:
        payment, loan = await LedgerService(storage).pay_loan(req, user_id)
    except LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return LoanPaymentResponse(payment=_posting_response(payment), loan=loan)


@router.post("/loan-disbursements", response_model=LoanDisbursementResponse, status_code=201)
async def take_loan(
    req: LoanDisbursementRequest,
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    try:
        loan, disbursement = await LedgerService(storage).take_loan(req, user_id)
    except LedgerError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return LoanDisbursementResponse(
        loan=loan, disbursement=_posting_response(disbursement) if disbursement else None
    )
