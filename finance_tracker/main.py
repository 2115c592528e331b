"""FastAPI main application."""
import logging
import math
from datetime import date, datetime, timezone
from typing import List, Optional
from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from finance_tracker import __version__
from finance_tracker.config import settings
from finance_tracker.models.budget import Budget, BudgetCreate, BudgetUpdate
from finance_tracker.models.category import Category, CategoryCreate, CategoryUpdate
from finance_tracker.models.report import (
    BalancePoint,
    BudgetWithProgress,
    ExportDocument,
    ImportResponse,
    MonthStats,
    ReportResponse,
    UploadResponse,
)
from finance_tracker.models.transaction import Transaction, TransactionCreate, TransactionType, TransactionUpdate
from finance_tracker.services.aggregator import (
    ContractViolation,
    LedgerAggregator,
    filter_transactions,
    recent_transactions,
)
from finance_tracker.services.budgets import BudgetEvaluator, index_by_category
from finance_tracker.services.transfer import DEFAULT_CATEGORIES, UnsupportedUploadError, parse_upload
from finance_tracker.storage.database import CategoryInUseError, Database, get_db
from finance_tracker.utils.timestamp import ensure_utc, resolve_timezone

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger("finance_tracker")

app = FastAPI(title=settings.app_name, debug=settings.debug, version=__version__)

report_tz = resolve_timezone(settings.report_timezone)
aggregator = LedgerAggregator(report_tz)


@app.exception_handler(ContractViolation)
async def contract_violation_handler(request: Request, exc: ContractViolation):
    """Aggregation refused its input: distinct from an empty report."""
    logger.error("Aggregation failed for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": f"Aggregation failed: {exc}"})


def _printable_input(value):
    # Request bodies may carry NaN/Infinity tokens that strict JSON cannot echo back
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {k: _printable_input(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_printable_input(v) for v in value]
    return value


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {**error, "input": _printable_input(error["input"])} if "input" in error else error
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


@app.exception_handler(CategoryInUseError)
async def category_in_use_handler(request: Request, exc: CategoryInUseError):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "transactions": exc.transactions,
            "budgets": exc.budgets,
        },
    )


def _as_of(value: Optional[datetime]) -> datetime:
    # The only place a clock is read; everything downstream takes it as input
    return ensure_utc(value) if value else datetime.now(timezone.utc)


def _require_category(
    db: Database,
    user_id: str,
    category_id: str,
    tx_type: Optional[TransactionType] = None,
) -> Category:
    category = db.categories.get(user_id, category_id)
    if category is None:
        raise HTTPException(status_code=400, detail=f"Category {category_id} not found for user {user_id}")
    if tx_type is not None and category.type != tx_type:
        raise HTTPException(
            status_code=400,
            detail=f"Category {category.name} is {category.type.value}; cannot hold {tx_type.value} transactions",
        )
    return category


def _with_progress(db: Database, user_id: str, budgets: List[Budget], as_of: datetime) -> List[BudgetWithProgress]:
    index = index_by_category(db.transactions.list(user_id))
    evaluator = BudgetEvaluator(index, as_of, report_tz)
    return [
        BudgetWithProgress(
            **budget.model_dump(),
            spent=progress.spent,
            progress_percent=progress.progress_percent,
        )
        for budget, progress in zip(budgets, evaluator.evaluate_all(budgets))
    ]


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": settings.app_name, "version": __version__}


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@app.get("/categories", response_model=List[Category])
async def list_categories(
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    return db.categories.list(user_id)


@app.post("/categories", response_model=Category)
async def create_category(
    payload: CategoryCreate,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    return db.categories.add(user_id, payload)


@app.post("/categories/defaults", response_model=List[Category])
async def seed_default_categories(
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    """Create the default category set, skipping names the user already has."""
    existing = {c.name.lower() for c in db.categories.list(user_id)}
    created = [
        db.categories.add(user_id, category)
        for category in DEFAULT_CATEGORIES
        if category.name.lower() not in existing
    ]
    logger.info("Seeded %d default categories for user '%s'", len(created), user_id)
    return created


@app.get("/categories/{category_id}", response_model=Category)
async def get_category(
    category_id: str,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    category = db.categories.get(user_id, category_id)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@app.put("/categories/{category_id}", response_model=Category)
async def update_category(
    category_id: str,
    payload: CategoryUpdate,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    if payload.type is not None:
        current = db.categories.get(user_id, category_id)
        if current is not None and current.type != payload.type:
            tx_count, budget_count = db.categories.usage_counts(user_id, category_id)
            if tx_count or budget_count:
                raise HTTPException(status_code=400, detail="Cannot change the type of a category in use")
    category = db.categories.update(user_id, category_id, payload)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@app.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    if not db.categories.delete(user_id, category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    return {"message": "Category deleted"}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

@app.get("/transactions", response_model=List[Transaction])
async def list_transactions(
    user_id: str = Query(..., description="User identifier"),
    start_date: Optional[date] = Query(None, description="First calendar day included"),
    end_date: Optional[date] = Query(None, description="Last calendar day included"),
    category_id: Optional[str] = Query(None, description="Only this category"),
    db: Database = Depends(get_db),
):
    return db.transactions.list(
        user_id,
        start_date=start_date,
        end_date=end_date,
        category_id=category_id,
        tz=report_tz,
    )


@app.post("/transactions", response_model=Transaction)
async def create_transaction(
    payload: TransactionCreate,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    _require_category(db, user_id, payload.category_id, payload.type)
    return db.transactions.add(user_id, payload)


@app.get("/transactions/category/{category_id}", response_model=List[Transaction])
async def list_category_transactions(
    category_id: str,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    if db.categories.get(user_id, category_id) is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return db.transactions.list(user_id, category_id=category_id)


@app.post("/transactions/upload", response_model=UploadResponse)
async def upload_transactions(
    file: UploadFile = File(...),
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    """
    Upload transactions from CSV or JSON file.

    Expected CSV format:
    date,amount,type,category,description

    `category` may be a category id or name. Rows that fail validation or
    name an unknown or mismatched category are skipped.
    """
    content = await file.read()
    try:
        parsed, skipped = parse_upload(file.filename, content)
    except UnsupportedUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Error processing file: {e}")

    categories = db.categories.list(user_id)
    by_ref = {c.id: c for c in categories}
    by_ref.update({c.name.lower(): c for c in categories})

    accepted = []
    for tx in parsed:
        category = by_ref.get(tx.category_id) or by_ref.get(tx.category_id.lower())
        if category is None or category.type != tx.type:
            skipped += 1
            logger.warning("Skipping uploaded row: category %r unusable for %s", tx.category_id, tx.type.value)
            continue
        accepted.append(tx.model_copy(update={"category_id": category.id}))

    if not accepted:
        raise HTTPException(status_code=400, detail="No valid transactions found in file")

    db.transactions.add_many(user_id, accepted)
    stats = db.transactions.stats(user_id)

    return UploadResponse(
        user_id=user_id,
        transaction_count=len(accepted),
        skipped_rows=skipped,
        date_range_start=stats.get("date_range_start"),
        date_range_end=stats.get("date_range_end"),
        message=f"Successfully uploaded {len(accepted)} transactions",
    )


@app.get("/transactions/{transaction_id}", response_model=Transaction)
async def get_transaction(
    transaction_id: str,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    tx = db.transactions.get(user_id, transaction_id)
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx


@app.put("/transactions/{transaction_id}", response_model=Transaction)
async def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    current = db.transactions.get(user_id, transaction_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    _require_category(
        db,
        user_id,
        payload.category_id or current.category_id,
        payload.type or current.type,
    )
    return db.transactions.update(user_id, transaction_id, payload)


@app.delete("/transactions/{transaction_id}")
async def delete_transaction(
    transaction_id: str,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    if not db.transactions.delete(user_id, transaction_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"message": "Transaction deleted"}


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------

@app.get("/budgets", response_model=List[BudgetWithProgress])
async def list_budgets(
    user_id: str = Query(..., description="User identifier"),
    as_of: Optional[datetime] = Query(None, description="Evaluation time; defaults to now (UTC)"),
    db: Database = Depends(get_db),
):
    return _with_progress(db, user_id, db.budgets.list(user_id), _as_of(as_of))


@app.post("/budgets", response_model=Budget)
async def create_budget(
    payload: BudgetCreate,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    _require_category(db, user_id, payload.category_id)
    return db.budgets.add(user_id, payload)


@app.get("/budgets/{budget_id}", response_model=BudgetWithProgress)
async def get_budget(
    budget_id: str,
    user_id: str = Query(..., description="User identifier"),
    as_of: Optional[datetime] = Query(None, description="Evaluation time; defaults to now (UTC)"),
    db: Database = Depends(get_db),
):
    budget = db.budgets.get(user_id, budget_id)
    if budget is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    return _with_progress(db, user_id, [budget], _as_of(as_of))[0]


@app.put("/budgets/{budget_id}", response_model=Budget)
async def update_budget(
    budget_id: str,
    payload: BudgetUpdate,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    current = db.budgets.get(user_id, budget_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    if payload.category_id is not None:
        _require_category(db, user_id, payload.category_id)

    start = payload.period_start or current.period_start
    end = payload.period_end if "period_end" in payload.model_fields_set else current.period_end
    if end is not None and end < start:
        raise HTTPException(status_code=400, detail="period_end must not be before period_start")

    return db.budgets.update(user_id, budget_id, payload)


@app.delete("/budgets/{budget_id}")
async def delete_budget(
    budget_id: str,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    if not db.budgets.delete(user_id, budget_id):
        raise HTTPException(status_code=404, detail="Budget not found")
    return {"message": "Budget deleted"}


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@app.get("/reports", response_model=ReportResponse)
async def get_report(
    user_id: str = Query(..., description="User identifier"),
    as_of: Optional[datetime] = Query(None, description="Evaluation time; defaults to now (UTC)"),
    start_date: Optional[date] = Query(None, description="First calendar day included"),
    end_date: Optional[date] = Query(None, description="Last calendar day included"),
    category_id: Optional[str] = Query(None, description="Only this category"),
    db: Database = Depends(get_db),
):
    """
    Totals, category breakdowns, monthly series and budget progress.

    The optional filters narrow the ledger before aggregation, so budget
    progress is computed over the filtered transactions too. Days are
    calendar days in the report timezone, the same as budget periods.
    """
    as_of = _as_of(as_of)
    transactions = filter_transactions(
        db.transactions.list(user_id),
        start=start_date,
        end=end_date,
        category_id=category_id,
        tz=report_tz,
    )
    report = aggregator.aggregate(
        transactions,
        db.categories.list(user_id),
        db.budgets.list(user_id),
        as_of,
    )
    return ReportResponse(
        user_id=user_id,
        as_of=as_of,
        report=report,
        recent_transactions=recent_transactions(transactions, settings.recent_transactions_limit),
    )


@app.get("/reports/balance", response_model=List[BalancePoint])
async def get_monthly_balance(
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    """Monthly income/expense, oldest month first, labelled for charts."""
    series = aggregator.monthly_series(db.transactions.list(user_id))
    return [
        BalancePoint(
            label=bucket.label,
            year=bucket.year,
            month=bucket.month,
            income=bucket.income,
            expense=bucket.expense,
        )
        for bucket in series
    ]


@app.get("/stats", response_model=MonthStats)
async def get_month_stats(
    user_id: str = Query(..., description="User identifier"),
    as_of: Optional[datetime] = Query(None, description="Any moment in the month to report; defaults to now (UTC)"),
    db: Database = Depends(get_db),
):
    return aggregator.month_stats(db.transactions.list(user_id), _as_of(as_of))


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------

@app.get("/export", response_model=ExportDocument)
async def export_data(
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    return db.export_document(user_id)


@app.post("/import", response_model=ImportResponse)
async def import_data(
    document: ExportDocument,
    user_id: str = Query(..., description="User identifier"),
    db: Database = Depends(get_db),
):
    counts = db.import_document(user_id, document)
    logger.info("Imported data for user '%s': %s", user_id, counts)
    return ImportResponse(
        user_id=user_id,
        message="Import complete",
        **counts,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
