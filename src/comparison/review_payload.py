"""Turn a reviewer's selection into an apply payload and a store update."""

from __future__ import annotations

from typing import Any, Dict, Iterable

from loguru import logger

from src.comparison.diff_engine import extracted_value, field_specs, store_column
from src.comparison.models import ApplyChangesPayload, Category, DiffReport
from src.extraction.consolidator import ConsolidatedRecord

_CATEGORIES = ("principal", "conjoint", "pret")


def build_apply_payload(
    report: DiffReport,
    extracted: ConsolidatedRecord,
    selected_fields: Iterable[str],
    update_type: bool = False,
) -> ApplyChangesPayload:
    """Validate the reviewer's selection against ``report``.

    Raises:
        ValueError: If a selected key is not one of the report's differences.
    """
    selected = frozenset(selected_fields)
    known = {diff.key for diff in report.all_diffs}
    unknown = sorted(selected - known)
    if unknown:
        raise ValueError(f"Selected fields not present in the report: {', '.join(unknown)}")

    payload = ApplyChangesPayload(
        selected_fields=selected,
        update_type=update_type,
        new_type=report.detected_type if update_type else None,
        extracted_data=extracted,
    )
    logger.debug(
        "Apply payload: {} field(s), update_type={}", len(selected), update_type
    )
    return payload


def to_store_update(payload: ApplyChangesPayload) -> Dict[str, Any]:
    """Map the selected keys to client store columns and their new values."""
    update: Dict[str, Any] = {}
    for key in sorted(payload.selected_fields):
        category, _, field = key.partition(".")
        if category not in _CATEGORIES:
            raise ValueError(f"Unknown field category in '{key}'")
        spec = next((s for s in field_specs(category) if s.field == field), None)
        if spec is None:
            raise ValueError(f"Unknown field '{key}'")
        value = extracted_value(payload.extracted_data, _category(category), spec)
        if value is None:
            continue
        update[store_column(_category(category), spec)] = value

    if payload.update_type and payload.new_type is not None:
        update["dossier_type"] = payload.new_type
    return update


def _category(name: str) -> Category:
    if name == "conjoint":
        return "conjoint"
    if name == "pret":
        return "pret"
    return "principal"
