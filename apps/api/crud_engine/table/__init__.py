from crud_engine.table.engine import TableFeatureEngine, derive_view, filter_stage, search_stage, sort_stage
from crud_engine.table.fields import CRUDField, FieldType

__all__ = [
    "CRUDField",
    "FieldType",
    "TableFeatureEngine",
    "derive_view",
    "filter_stage",
    "search_stage",
    "sort_stage",
]
