from __future__ import annotations

import csv
import io
import json
from collections.abc import Mapping, Sequence
from typing import Any, Literal

from crud_engine.table.fields import CRUDField


ExportFormat = Literal["csv", "json"]

_MEDIA_TYPES: dict[str, str] = {
    "csv": "text/csv",
    "json": "application/json",
}


def export_media_type(fmt: str) -> str:
    try:
        return _MEDIA_TYPES[fmt]
    except KeyError:
        raise ValueError(f"unsupported export format '{fmt}'") from None


def _fieldnames(items: Sequence[Mapping[str, Any]], fields: Sequence[CRUDField | str] | None) -> list[str]:
    if fields:
        return [field.key if isinstance(field, CRUDField) else str(field) for field in fields]
    names: list[str] = []
    for item in items:
        for key in item:
            if key not in names:
                names.append(key)
    return names


def _csv_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def export_items(
    items: Sequence[Mapping[str, Any]],
    fmt: ExportFormat,
    fields: Sequence[CRUDField | str] | None = None,
) -> bytes:
    """Serialize CRUD items to ``csv`` or ``json`` bytes, limited to ``fields`` when given."""

    export_media_type(fmt)
    fieldnames = _fieldnames(items, fields)
    rows = [{name: item.get(name) for name in fieldnames} for item in items]

    if fmt == "json":
        return json.dumps(rows, default=str).encode("utf-8")

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames)
    writer.writeheader()
    for row in rows:
        writer.writerow({name: _csv_cell(value) for name, value in row.items()})
    return output.getvalue().encode("utf-8")
