import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from auth import verify_access_token
from config import get_settings
from database import SessionLocal
from deadline import Deadline
from errors import AppError, InvalidRequest, InvalidToken, StoreError
from schemas import CategoryIn, TransactionIn
from services import CategoryService, TransactionService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracking API")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_deadline() -> Deadline:
    return Deadline.after(get_settings().request_timeout_secs)


def current_user_id(authorization: Optional[str] = Header(default=None)) -> int:
    if not authorization:
        raise InvalidToken("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidToken("Authorization header must be 'Bearer <token>'")
    return verify_access_token(token.strip())


def category_service(
    db: Session = Depends(get_db), deadline: Deadline = Depends(get_deadline)
) -> CategoryService:
    return CategoryService(db, deadline)


def transaction_service(
    db: Session = Depends(get_db), deadline: Deadline = Depends(get_deadline)
) -> TransactionService:
    return TransactionService(db, deadline)


def success(data: object, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"message": message, "data": data}),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    body = InvalidRequest().to_dict()
    body["meta"] = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(f"request_failed: path={request.url.path} operation={exc.operation}")
    return JSONResponse(
        status_code=500,
        content={
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "http_code": 500,
        },
    )


@app.post("/categories")
def create_category(
    data: CategoryIn,
    user_id: int = Depends(current_user_id),
    service: CategoryService = Depends(category_service),
):
    category = service.create(user_id, data)
    return success(category, "Category created successfully", 201)


@app.get("/categories")
def list_categories(
    user_id: int = Depends(current_user_id),
    service: CategoryService = Depends(category_service),
):
    return success(service.list(user_id), "Categories retrieved successfully")


@app.put("/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryIn,
    user_id: int = Depends(current_user_id),
    service: CategoryService = Depends(category_service),
):
    if category_id <= 0:
        raise InvalidRequest("Invalid category ID format.")
    category = service.update(category_id, user_id, data)
    return success(category, "Category updated successfully")


@app.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(current_user_id),
    service: CategoryService = Depends(category_service),
):
    if category_id <= 0:
        raise InvalidRequest("Invalid category ID format.")
    service.delete(category_id, user_id)
    return success(None, "Category deleted successfully")


@app.post("/transactions")
def create_transaction(
    data: TransactionIn,
    user_id: int = Depends(current_user_id),
    service: TransactionService = Depends(transaction_service),
):
    txn = service.create(user_id, data)
    return success(txn, "Transaction created successfully", 201)


@app.get("/transactions")
def list_transactions(
    user_id: int = Depends(current_user_id),
    service: TransactionService = Depends(transaction_service),
):
    return success(service.list(user_id), "Transactions retrieved successfully")


def _require_range(start_date: str, end_date: str) -> None:
    if not start_date or not end_date:
        raise InvalidRequest(
            "start_date and end_date query parameters are required for summary."
        )


@app.get("/transactions/summary")
def daily_summary(
    start_date: str = Query(default=""),
    end_date: str = Query(default=""),
    user_id: int = Depends(current_user_id),
    service: TransactionService = Depends(transaction_service),
):
    _require_range(start_date, end_date)
    rows = service.daily_summary(user_id, start_date, end_date)
    return success(rows, "Daily transaction summary retrieved successfully")


@app.get("/transactions/summary-by-category-type")
def summary_by_category_and_type(
    start_date: str = Query(default=""),
    end_date: str = Query(default=""),
    user_id: int = Depends(current_user_id),
    service: TransactionService = Depends(transaction_service),
):
    _require_range(start_date, end_date)
    rows = service.summary_by_category_and_type(user_id, start_date, end_date)
    return success(
        rows, "Transaction summary by category and type retrieved successfully"
    )


@app.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    user_id: int = Depends(current_user_id),
    service: TransactionService = Depends(transaction_service),
):
    if transaction_id <= 0:
        raise InvalidRequest("Invalid transaction ID format.")
    txn = service.update(transaction_id, user_id, data)
    return success(txn, "Transaction updated successfully")


@app.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(current_user_id),
    service: TransactionService = Depends(transaction_service),
):
    if transaction_id <= 0:
        raise InvalidRequest("Invalid transaction ID format.")
    service.delete(transaction_id, user_id)
    return success(None, "Transaction deleted successfully")
