"""Dossier reconciliation pipeline.

Ties the stages together for one dossier:
- parse the extractor's per-document fragments
- consolidate them into a single record as of a given date
- compare the record with the client store snapshot

The taxonomy registry is loaded once per pipeline and shared by every stage.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict

from src.comparison.diff_engine import DiffEngine
from src.comparison.models import CurrentClientData, DiffReport
from src.extraction.consolidator import ConsolidatedRecord, Consolidator
from src.extraction.models import ExtractionFragment
from src.normalization.code_mapper import CodeMapper
from src.normalization.taxonomies import TaxonomyRegistry
from src.utils.config import Config


class ReconciliationResult(BaseModel):
    """Consolidated record and its comparison report."""

    model_config = ConfigDict(frozen=True)

    record: ConsolidatedRecord
    report: DiffReport


class ReconciliationPipeline:
    """Consolidate extraction fragments and diff them against the client store."""

    def __init__(self, config: Config | None = None, registry: TaxonomyRegistry | None = None):
        self.config = config or Config()
        self.registry = registry or TaxonomyRegistry.from_yaml(
            self.config.normalization.taxonomy_file
        )
        self.code_mapper = CodeMapper(registry=self.registry, config=self.config.normalization)
        self.consolidator = Consolidator(
            code_mapper=self.code_mapper, config=self.config.consolidation
        )
        self.diff_engine = DiffEngine(code_mapper=self.code_mapper, config=self.config.comparison)

    def consolidate(
        self,
        fragments: Sequence[ExtractionFragment | Mapping[str, Any]],
        as_of: date | None = None,
    ) -> ConsolidatedRecord:
        """Consolidate fragments; ``as_of`` defaults to today."""
        parsed = [_as_fragment(fragment) for fragment in fragments]
        return self.consolidator.consolidate(parsed, as_of or date.today())

    def compare(
        self,
        record: ConsolidatedRecord,
        current: CurrentClientData | Mapping[str, Any],
    ) -> DiffReport:
        return self.diff_engine.compare(record, current)

    def run(
        self,
        fragments: Sequence[ExtractionFragment | Mapping[str, Any]],
        current: CurrentClientData | Mapping[str, Any],
        as_of: date | None = None,
    ) -> ReconciliationResult:
        """Consolidate then compare in one call."""
        record = self.consolidate(fragments, as_of)
        report = self.compare(record, current)
        logger.info(
            "Reconciled dossier: {} difference(s), type {} -> {}",
            report.total_differences,
            report.current_type,
            report.detected_type,
        )
        return ReconciliationResult(record=record, report=report)


def _as_fragment(fragment: ExtractionFragment | Mapping[str, Any]) -> ExtractionFragment:
    if isinstance(fragment, ExtractionFragment):
        return fragment
    return ExtractionFragment.model_validate(dict(fragment))


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_fragments(path: str | Path) -> List[ExtractionFragment]:
    """Read fragments from a JSON list or a ``{"fragments": [...]}`` object."""
    data = _read_json(Path(path))
    if isinstance(data, dict):
        data = data.get("fragments", [data])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of fragments in {path}")
    fragments = [ExtractionFragment.model_validate(item) for item in data]
    logger.debug("Loaded {} fragment(s) from {}", len(fragments), path)
    return fragments


def load_current(path: str | Path) -> CurrentClientData:
    data = _read_json(Path(path))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object of client data in {path}")
    return CurrentClientData.model_validate(data)


def load_record(path: str | Path) -> ConsolidatedRecord:
    return ConsolidatedRecord.model_validate(_read_json(Path(path)))


def write_json(payload: BaseModel | Dict[str, Any], path: str | Path) -> Path:
    """Write a model or mapping as pretty JSON, creating parent directories."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else payload
    out.write_text(json.dumps(data, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    return out
