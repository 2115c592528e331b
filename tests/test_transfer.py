"""Tests for upload parsing and default categories."""
import json
import pytest
from finance_tracker.services.transfer import DEFAULT_CATEGORIES, UnsupportedUploadError, parse_upload


def test_parse_csv_skips_bad_rows():
    content = b"""date,amount,type,category,description
2024-01-01T10:00:00,50.0,EXPENSE,Food,Lunch
2024-01-02T10:00:00,not-a-number,EXPENSE,Food,Broken
2024-01-03,2500,income,Salary,Payday
2024-01-04,12,EXPENSE,,No category"""

    parsed, skipped = parse_upload("transactions.csv", content)

    assert skipped == 2
    assert [t.amount for t in parsed] == [50.0, 2500.0]
    assert parsed[1].type.value == "INCOME"
    assert parsed[0].category_id == "Food"


def test_parse_json_list_and_wrapped_document():
    rows = [
        {"timestamp": "2024-01-01T10:00:00Z", "amount": -20, "type": "EXPENSE", "category_id": "c1"},
        "garbage",
    ]

    parsed, skipped = parse_upload("tx.json", json.dumps(rows).encode())
    wrapped, _ = parse_upload("tx.JSON", json.dumps({"transactions": rows}).encode())

    assert len(parsed) == 1
    assert skipped == 1
    assert parsed[0].category_id == "c1"
    assert len(wrapped) == 1


def test_parse_rejects_other_formats():
    with pytest.raises(UnsupportedUploadError):
        parse_upload("transactions.xlsx", b"whatever")


def test_parse_rejects_malformed_json():
    with pytest.raises(ValueError):
        parse_upload("transactions.json", b"{not json")


def test_default_categories_cover_both_types():
    types = {c.type.value for c in DEFAULT_CATEGORIES}
    names = [c.name for c in DEFAULT_CATEGORIES]

    assert types == {"INCOME", "EXPENSE"}
    assert len(names) == len(set(names))
