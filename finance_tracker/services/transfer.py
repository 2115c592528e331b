"""Parsing of uploaded transaction files and the default category set."""
import csv
import json
import logging
from typing import Any, Dict, List, Tuple
from pydantic import ValidationError
from finance_tracker.models.category import CategoryCreate
from finance_tracker.models.transaction import TransactionCreate

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES = [
    CategoryCreate(name="Rent", icon="pi pi-home", type="EXPENSE", color="#FF5733"),
    CategoryCreate(name="Food", icon="pi pi-utensils", type="EXPENSE", color="#FFC300"),
    CategoryCreate(name="Transport", icon="pi pi-car", type="EXPENSE", color="#DAF7A6"),
    CategoryCreate(name="Entertainment", icon="pi pi-film", type="EXPENSE", color="#C70039"),
    CategoryCreate(name="Salary", icon="pi pi-briefcase", type="INCOME", color="#581845"),
    CategoryCreate(name="Investments", icon="pi pi-chart-line", type="INCOME", color="#900C3F"),
    CategoryCreate(name="Other", icon="pi pi-plus", type="INCOME", color="#FF5733"),
]


class UnsupportedUploadError(ValueError):
    """Raised for files that are neither CSV nor JSON."""


def _row_to_payload(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "date": row.get("date") or row.get("timestamp"),
        "amount": row.get("amount"),
        "type": row.get("type"),
        "category_id": row.get("category_id") or row.get("category") or None,
        "description": row.get("description") or "",
    }


def parse_upload(filename: str, content: bytes) -> Tuple[List[TransactionCreate], int]:
    """
    Parse transactions from a CSV or JSON upload.
    
    Expected CSV format:
    date,amount,type,category,description
    
    Expected JSON format:
    [{"date": "...", "amount": ..., "type": "EXPENSE", "category": "...", ...}, ...]
    
    The category column may hold a category id or a category name; the
    caller resolves it. Invalid rows are skipped and counted.
    
    Returns:
        Tuple of (parsed transactions, skipped row count)
    
    Raises:
        UnsupportedUploadError: If the file is neither CSV nor JSON
        ValueError: If the file cannot be decoded
    """
    text_content = content.decode("utf-8-sig")
    name = (filename or "").lower()
    
    if name.endswith(".csv"):
        rows = list(csv.DictReader(text_content.splitlines()))
    elif name.endswith(".json"):
        data = json.loads(text_content)
        if isinstance(data, dict):
            data = data.get("transactions", [])
        if not isinstance(data, list):
            raise ValueError("JSON upload must be a list of transactions")
        rows = data
    else:
        raise UnsupportedUploadError("File must be CSV or JSON")
    
    transactions = []
    skipped = 0
    for line_no, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            skipped += 1
            logger.warning("Skipping row %d: not an object", line_no)
            continue
        try:
            transactions.append(TransactionCreate(**_row_to_payload(row)))
        except ValidationError as e:
            skipped += 1
            logger.warning("Skipping invalid row %d: %s", line_no, e.errors()[0].get("msg"))
    
    return transactions, skipped
