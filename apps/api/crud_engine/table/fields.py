from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


FieldType = Literal[
    "text",
    "email",
    "tel",
    "url",
    "number",
    "currency",
    "percentage",
    "date",
    "datetime",
    "time",
    "select",
    "multiselect",
    "boolean",
    "textarea",
    "json",
    "custom",
]

_NUMERIC_TYPES = {"number", "currency", "percentage"}
_DATE_TYPES = {"date", "datetime"}


class CRUDField(BaseModel):
    key: str = Field(min_length=1)
    label: str | None = None
    type: FieldType = "text"
    searchable: bool = False
    filterable: bool = True
    sortable: bool = True
    show_in_list: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def cast(self) -> str | None:
        if self.type in _NUMERIC_TYPES:
            return "number"
        if self.type in _DATE_TYPES:
            return "date"
        return None
