"""Comparison package exports."""

from src.comparison.diff_engine import DiffEngine, FieldSpec, format_value
from src.comparison.models import (
    ApplyChangesPayload,
    CurrentClientData,
    DiffReport,
    FieldDifference,
)
from src.comparison.review_payload import build_apply_payload, to_store_update

__all__ = [
    "ApplyChangesPayload",
    "CurrentClientData",
    "DiffEngine",
    "DiffReport",
    "FieldDifference",
    "FieldSpec",
    "build_apply_payload",
    "format_value",
    "to_store_update",
]
