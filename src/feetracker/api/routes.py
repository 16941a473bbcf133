"""JSON API endpoints for historical batches, live transactions and the ETH price.

Services are read from request.app.state (wired by main.py lifespan).
Domain errors propagate to the exception handlers registered in app.py.
"""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from feetracker.historical.batch_manager import DEFAULT_TAKE, MAX_TAKE, MIN_TAKE
from feetracker.models import (
    EthPrice,
    HistoricalBatch,
    HistoricalTransaction,
    LiveTransaction,
    QueriedTransaction,
    Summary,
)

router = APIRouter()


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal values to plain (non-exponent) strings for JSON."""
    if isinstance(obj, Decimal):
        return format(obj, "f")
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decimal_to_str(item) for item in obj]
    return obj


def _batch_to_dict(batch: HistoricalBatch) -> dict:
    return {
        "id": batch.id,
        "startBlock": batch.start_block,
        "endBlock": batch.end_block,
        "dateFrom": batch.date_from,
        "dateTo": batch.date_to,
        "status": batch.status.value,
        "totalTxns": batch.total_txns,
        "totalFeeInEth": batch.total_fee_in_eth,
        "totalFeeInUsdt": batch.total_fee_in_usdt,
        "createdAt": batch.created_at,
        "updatedAt": batch.updated_at,
    }


def _historical_tx_to_dict(tx: HistoricalTransaction) -> dict:
    return {
        "id": tx.id,
        "batchId": tx.batch_id,
        "transactionHash": tx.transaction_hash,
        "feeInEth": tx.fee_in_eth,
        "feeInUsdt": tx.fee_in_usdt,
        "createdAt": tx.created_at,
    }


def _live_tx_to_dict(tx: LiveTransaction) -> dict:
    return {
        "id": tx.id,
        "transactionHash": tx.transaction_hash,
        "logIndex": tx.log_index,
        "blockNumber": tx.block_number,
        "timestamp": tx.timestamp,
        "sender": tx.sender,
        "recipient": tx.recipient,
        "feeInEth": tx.fee_in_eth,
        "feeInUsdt": tx.fee_in_usdt,
        "createdAt": tx.created_at,
    }


def _summary_to_dict(summary: Summary) -> dict:
    return {
        "id": summary.id,
        "totalTxns": summary.total_txns,
        "totalFeeETH": summary.total_fee_eth,
        "totalFeeUSDT": summary.total_fee_usdt,
        "updatedAt": summary.updated_at,
    }


def _queried_tx_to_dict(tx: QueriedTransaction) -> dict:
    return {
        "transactionHash": tx.transaction_hash,
        "feeInEth": tx.fee_in_eth,
        "feeInUsdt": tx.fee_in_usdt,
    }


def _price_to_dict(price: EthPrice) -> dict:
    return {"id": price.id, "price": price.price, "timestamp": price.timestamp}


@router.get("/transactions")
async def list_transactions(
    request: Request,
    cursor: str | None = None,
    offset: int = Query(0, ge=0),
    take: int = Query(DEFAULT_TAKE, ge=MIN_TAKE, le=MAX_TAKE),
) -> JSONResponse:
    """Live transactions, newest first, bounded by an optional frozen cursor."""
    page = await request.app.state.paginator.list(cursor=cursor, offset=offset, take=take)
    return JSONResponse(content=_decimal_to_str({
        "transactions": [_live_tx_to_dict(tx) for tx in page.items],
        "totalPages": page.total_pages,
        "currentPage": page.current_page,
    }))


@router.get("/transactions/summary")
async def get_summary(request: Request) -> JSONResponse:
    summary = await request.app.state.summary_updater.get_summary()
    if summary is None:
        return JSONResponse(content=None)
    return JSONResponse(content=_decimal_to_str(_summary_to_dict(summary)))


@router.get("/transactions/history")
async def create_historical_batch(
    request: Request,
    date_from: int = Query(..., alias="dateFrom"),
    date_to: int = Query(..., alias="dateTo"),
) -> JSONResponse:
    """Start ingesting a date range (Unix ms). Returns the new PENDING batch."""
    batch = await request.app.state.batch_manager.create_batch(date_from, date_to)
    return JSONResponse(content=_decimal_to_str(_batch_to_dict(batch)))


@router.get("/transactions/history/{batch_id}/info")
async def get_historical_batch(request: Request, batch_id: int) -> JSONResponse:
    batch = await request.app.state.batch_manager.get_batch(batch_id)
    return JSONResponse(content=_decimal_to_str(_batch_to_dict(batch)))


@router.get("/transactions/history/{batch_id}")
async def list_historical_transactions(
    request: Request,
    batch_id: int,
    offset: int = Query(0, ge=0),
    take: int = Query(DEFAULT_TAKE, ge=MIN_TAKE, le=MAX_TAKE),
) -> JSONResponse:
    """Transactions of a COMPLETED batch, newest first."""
    page = await request.app.state.batch_manager.list_batch_transactions(
        batch_id, take=take, offset=offset
    )
    return JSONResponse(content=_decimal_to_str({
        "transactions": [_historical_tx_to_dict(tx) for tx in page.items],
        "totalPages": page.total_pages,
        "currentPage": page.current_page,
    }))


@router.get("/transactions/{tx_hash}")
async def find_transaction(request: Request, tx_hash: str) -> JSONResponse:
    """Fee of any mined transaction, priced at the latest ETH price."""
    tx = await request.app.state.transaction_lookup.find_transaction(tx_hash)
    return JSONResponse(content=_decimal_to_str(_queried_tx_to_dict(tx)))


@router.get("/eth-price")
async def get_eth_price(request: Request) -> JSONResponse:
    price = await request.app.state.price_service.get_latest_price()
    return JSONResponse(content=_decimal_to_str(_price_to_dict(price)))
