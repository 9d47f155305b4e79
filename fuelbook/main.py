from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import uuid4

import uvicorn
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fuelbook.config import settings
from fuelbook.errors import ConfirmationRequired, FormatError, ValidationError
from fuelbook.logging_config import setup_logging
from fuelbook.pricing import round_currency
from fuelbook.schemas import ShiftInfo, ShiftSummary, Transaction
from fuelbook.service import LedgerService, build_service
from fuelbook.storage import SaveReport
from fuelbook.transfer import export_filename


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    service = build_service(settings)
    service.load()
    service.start_autosave()
    app.state.service = service
    try:
        yield
    finally:
        service.close()


app = FastAPI(title="Fuel Record Book", lifespan=lifespan)


def get_service(request: Request) -> LedgerService:
    return request.app.state.service


def _meta(saves: Iterable[SaveReport] = (), request_id: Optional[str] = None) -> dict:
    warnings: list[str] = []
    for report in saves:
        if not report.durable_ok and "durable store write failed" not in warnings:
            warnings.append("durable store write failed")
        if not report.backup_ok and "backup store write failed" not in warnings:
            warnings.append("backup store write failed")
    return {
        "request_id": request_id or f"req_{uuid4().hex}",
        "warnings": warnings,
    }


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(FormatError)
async def handle_format_error(request: Request, exc: FormatError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConfirmationRequired)
async def handle_confirmation_required(request: Request, exc: ConfirmationRequired) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def _transaction_data(transaction: Transaction) -> dict:
    return {
        "transaction_id": transaction.id,
        "timestamp": transaction.timestamp.isoformat(),
        "payment_method": transaction.payment_method.value,
        "amount": round_currency(transaction.amount),
        "discount": round_currency(transaction.discount),
    }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _shift_info_data(info: ShiftInfo) -> dict:
    return {
        "employee_name": info.employee_name,
        "shift_start": _isoformat(info.shift_start),
        "shift_end": _isoformat(info.shift_end),
        "is_open": info.is_open,
    }


def _shift_data(shift: ShiftSummary, with_transactions: bool = False) -> dict:
    totals = shift.summary
    data = {
        "shift_id": shift.id,
        "employee_name": shift.employee_name,
        "shift_start": _isoformat(shift.shift_start),
        "shift_end": _isoformat(shift.shift_end),
        "summary": {
            "cash_total": round_currency(totals.cash_total),
            "cash_discount": round_currency(totals.cash_discount),
            "card_total": round_currency(totals.card_total),
            "card_discount": round_currency(totals.card_discount),
            "online_total": round_currency(totals.online_total),
            "online_discount": round_currency(totals.online_discount),
            "online_bucket_discount": round_currency(totals.online_bucket_discount),
            "grand_total": round_currency(totals.grand_total),
            "total_discount": round_currency(totals.total_discount),
            "total_transactions": totals.total_transactions,
        },
    }
    if with_transactions:
        data["transactions"] = [_transaction_data(t) for t in shift.transactions]
    return data


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check(service: LedgerService = Depends(get_service)) -> dict:
    ping = getattr(service.store.durable, "ping", None)
    durable_ok = ping() if ping is not None else True
    return {"status": "healthy" if durable_ok else "degraded", "durable_store": durable_ok}


class FuelPricesUpdate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"normal": 106.39, "xp95": 113.73, "diesel": 90.0}}}
    normal: float
    xp95: float
    diesel: float


@app.get("/api/v1/fuel-prices", tags=["Fuel Prices"])
def get_fuel_prices(service: LedgerService = Depends(get_service)) -> dict:
    return {"data": service.fuel_prices.model_dump(), "meta": _meta()}


@app.put("/api/v1/fuel-prices", tags=["Fuel Prices"])
def save_fuel_prices(payload: FuelPricesUpdate, service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        prices = service.save_fuel_prices(payload.normal, payload.xp95, payload.diesel)
    return {"data": prices.model_dump(), "meta": _meta(saves)}


class AmountQuoteRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {"customer_amount": 250, "fuel_type": "normal"}}}
    customer_amount: float
    fuel_type: Optional[str] = None
    unit_price: Optional[float] = None
    strict: bool = True


class VolumeQuoteRequest(BaseModel):
    model_config = {"json_schema_extra": {"example": {"liters": 2, "fuel_type": "normal"}}}
    liters: float
    fuel_type: Optional[str] = None
    unit_price: Optional[float] = None
    per_liter_discount: Optional[float] = None


@app.post("/api/v1/discounts:byAmount", tags=["Discounts"])
def quote_discount_by_amount(payload: AmountQuoteRequest, service: LedgerService = Depends(get_service)) -> dict:
    quote = service.quote_by_amount(
        payload.customer_amount,
        fuel_type=payload.fuel_type,
        unit_price=payload.unit_price,
        strict=payload.strict,
    )
    return {"data": quote.rounded(), "meta": _meta()}


@app.post("/api/v1/discounts:byVolume", tags=["Discounts"])
def quote_discount_by_volume(payload: VolumeQuoteRequest, service: LedgerService = Depends(get_service)) -> dict:
    quote = service.quote_by_volume(
        payload.liters,
        fuel_type=payload.fuel_type,
        unit_price=payload.unit_price,
        per_liter_discount=payload.per_liter_discount,
    )
    return {"data": quote.rounded(), "meta": _meta()}


class TransactionCreate(BaseModel):
    model_config = {"json_schema_extra": {"example": {"amount": 250, "discount": 2.35, "payment_method": "cash"}}}
    amount: float = 0.0
    discount: float = 0.0
    payment_method: str = "cash"


class PaymentMethodUpdate(BaseModel):
    payment_method: str


class FilterUpdate(BaseModel):
    method: str = "all"


@app.post("/api/v1/transactions", tags=["Transactions"])
def add_transaction(payload: TransactionCreate, service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        transaction = service.add_transaction(payload.amount, payload.discount, payload.payment_method)
    return {"data": _transaction_data(transaction), "meta": _meta(saves)}


@app.get("/api/v1/transactions", tags=["Transactions"])
def list_transactions(
    method: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_service),
) -> dict:
    data = [_transaction_data(t) for t in service.filtered_transactions(method)]
    return {"data": data, "meta": _meta()}


@app.patch("/api/v1/transactions/{transaction_id}", tags=["Transactions"])
def update_payment_method(
    transaction_id: int,
    payload: PaymentMethodUpdate,
    service: LedgerService = Depends(get_service),
) -> dict:
    with service.recording_saves() as saves:
        updated = service.update_payment_method(transaction_id, payload.payment_method)
    return {
        "data": {
            "transaction_id": transaction_id,
            "updated": updated is not None,
            "transaction": _transaction_data(updated) if updated is not None else None,
        },
        "meta": _meta(saves),
    }


@app.delete("/api/v1/transactions/{transaction_id}", tags=["Transactions"])
def delete_transaction(transaction_id: int, service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        removed = service.delete_transaction(transaction_id)
    return {"data": {"transaction_id": transaction_id, "removed": removed}, "meta": _meta(saves)}


@app.put("/api/v1/filter", tags=["Transactions"])
def set_filter(payload: FilterUpdate, service: LedgerService = Depends(get_service)) -> dict:
    return {"data": {"filter": service.set_filter(payload.method)}, "meta": _meta()}


@app.get("/api/v1/dashboard", tags=["Dashboard"])
def get_dashboard(service: LedgerService = Depends(get_service)) -> dict:
    return {"data": service.dashboard(), "meta": _meta()}


class ShiftInfoSave(BaseModel):
    model_config = {
        "json_schema_extra": {"example": {"employee_name": "Ravi", "shift_start": "2026-01-01T06:00:00"}}
    }
    employee_name: str
    shift_start: Optional[datetime] = None
    shift_end: Optional[datetime] = None


class ShiftEnd(BaseModel):
    confirm_empty: bool = False


@app.get("/api/v1/shift", tags=["Shift"])
def get_shift_info(service: LedgerService = Depends(get_service)) -> dict:
    return {"data": _shift_info_data(service.shift_info), "meta": _meta()}


@app.put("/api/v1/shift", tags=["Shift"])
def save_shift_info(payload: ShiftInfoSave, service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        info = service.save_shift_info(payload.employee_name, payload.shift_start, payload.shift_end)
    return {"data": _shift_info_data(info), "meta": _meta(saves)}


@app.post("/api/v1/shift:end", tags=["Shift"])
def end_shift(payload: ShiftEnd, service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        summary = service.end_shift(confirm_empty=payload.confirm_empty)
    return {"data": _shift_data(summary, with_transactions=True), "meta": _meta(saves)}


@app.post("/api/v1/data:clear", tags=["Shift"])
def clear_all_data(service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        service.clear_all_data()
    return {"data": {"cleared": True}, "meta": _meta(saves)}


@app.get("/api/v1/shift-history", tags=["Shift History"])
def list_shift_history(service: LedgerService = Depends(get_service)) -> dict:
    return {"data": [_shift_data(shift) for shift in service.shift_history()], "meta": _meta()}


@app.get("/api/v1/shift-history/{shift_id}", tags=["Shift History"])
def get_shift(shift_id: int, service: LedgerService = Depends(get_service)) -> dict:
    shift = service.get_shift(shift_id)
    if not shift:
        raise HTTPException(status_code=404, detail="shift not found")
    return {"data": _shift_data(shift, with_transactions=True), "meta": _meta()}


@app.delete("/api/v1/shift-history/{shift_id}", tags=["Shift History"])
def delete_shift(shift_id: int, service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        removed = service.delete_shift(shift_id)
    return {"data": {"shift_id": shift_id, "removed": removed}, "meta": _meta(saves)}


@app.delete("/api/v1/shift-history", tags=["Shift History"])
def clear_history(service: LedgerService = Depends(get_service)) -> dict:
    with service.recording_saves() as saves:
        service.clear_history()
    return {"data": {"cleared": True}, "meta": _meta(saves)}


@app.get("/api/v1/export", tags=["Import / Export"])
def export_data(service: LedgerService = Depends(get_service)) -> JSONResponse:
    document = service.export_snapshot()
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@app.post("/api/v1/import", tags=["Import / Export"])
def import_data(
    document: Any = Body(...),
    replace_prices: bool = Query(default=False),
    service: LedgerService = Depends(get_service),
) -> dict:
    with service.recording_saves() as saves:
        result = service.import_snapshot(document, replace_prices=replace_prices)
    return {"data": result.to_dict(), "meta": _meta(saves)}


def run() -> None:
    uvicorn.run("fuelbook.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
