from __future__ import annotations

import csv
import io
import json

import pytest

from crud_engine.export import export_items, export_media_type
from crud_engine.table import CRUDField


ITEMS = [
    {"id": "1", "code": "PZ-1", "name": "Pizza", "price": 10.5, "tags": ["hot", "veg"], "description": None},
    {"id": "2", "code": "ES-1", "name": "Espresso", "price": 3, "extra": "only here"},
]


def _rows(payload: bytes) -> list[dict[str, str]]:
    return list(csv.DictReader(io.StringIO(payload.decode("utf-8"))))


def test_csv_uses_field_keys_in_order() -> None:
    payload = export_items(ITEMS, "csv", [CRUDField(key="code"), CRUDField(key="name"), "price"])

    assert payload.decode("utf-8").splitlines()[0] == "code,name,price"
    assert _rows(payload) == [
        {"code": "PZ-1", "name": "Pizza", "price": "10.5"},
        {"code": "ES-1", "name": "Espresso", "price": "3"},
    ]


def test_csv_without_fields_takes_union_of_keys() -> None:
    rows = _rows(export_items(ITEMS, "csv"))

    assert list(rows[0]) == ["id", "code", "name", "price", "tags", "description", "extra"]
    assert rows[0]["tags"] == '["hot", "veg"]'
    assert rows[0]["description"] == ""
    assert rows[1]["extra"] == "only here"
    assert rows[1]["tags"] == ""


def test_json_export_keeps_types() -> None:
    payload = json.loads(export_items(ITEMS, "json", ["name", "price", "tags"]))

    assert payload == [
        {"name": "Pizza", "price": 10.5, "tags": ["hot", "veg"]},
        {"name": "Espresso", "price": 3, "tags": None},
    ]


def test_unsupported_format_is_rejected() -> None:
    assert export_media_type("csv") == "text/csv"
    with pytest.raises(ValueError):
        export_items(ITEMS, "xlsx")  # type: ignore[arg-type]
