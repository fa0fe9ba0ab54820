from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, List

import pytest
import yaml

from src.extraction.consolidator import DerivationError
from src.normalization.taxonomies import MEMBERSHIP_TYPE
from src.pipeline.reconciliation_pipeline import (
    ReconciliationPipeline,
    load_current,
    load_fragments,
    load_record,
    write_json,
)
from src.utils.config import Config


def _fragments() -> List[Dict[str, Any]]:
    return [
        {
            "type": "offrePret",
            "document_id": "offre",
            "emprunteurs": {"principal": {"nom": "Dupont", "prenom": "Jean"}},
            "pret": {"typeAdhesion": "loi lemoine", "montantInitial": "180 000"},
            "metadata": {"confidence": 0.9},
        },
        {
            "type": "tableauAmortissement",
            "document_id": "tableau",
            "tableauAmortissement": [
                {"numero": 1, "date": "2023-01-01", "capitalRestantDu": 100000},
                {"numero": 2, "date": "2023-02-01", "capitalRestantDu": 99500},
            ],
            "metadata": {"confidence": 0.8},
        },
    ]


def test_run_consolidates_and_compares() -> None:
    pipeline = ReconciliationPipeline(Config())

    result = pipeline.run(
        _fragments(), {"client_nom": "Dupont", "dossier_type": "seul"}, date(2023, 1, 15)
    )

    assert result.record.calculated.remaining_principal == 99500
    assert result.report.get("principal.prenom").is_new
    assert result.report.get("principal.nom") is None
    assert result.report.confidence == pytest.approx(0.8 - 0.05)


def test_taxonomy_override_is_loaded_once_and_used(tmp_path: Path) -> None:
    taxonomy_file = tmp_path / "taxonomies.yaml"
    taxonomy_file.write_text(
        yaml.safe_dump(
            {MEMBERSHIP_TYPE: [{"code": 4, "name": "Résiliation", "labels": ["loi lemoine"]}]}
        ),
        encoding="utf-8",
    )
    cfg = Config(normalization={"taxonomy_file": str(taxonomy_file)})

    pipeline = ReconciliationPipeline(cfg)
    record = pipeline.consolidate(_fragments(), date(2023, 1, 15))

    assert pipeline.code_mapper.registry is pipeline.registry
    assert record.loan.membership_type.code == 4
    assert record.unresolved_fields == []


def test_consolidate_without_schedule_fails() -> None:
    pipeline = ReconciliationPipeline(Config())

    with pytest.raises(DerivationError):
        pipeline.consolidate(_fragments()[:1], date(2023, 1, 15))


def test_json_helpers_round_trip_record(tmp_path: Path) -> None:
    fragments_path = tmp_path / "fragments.json"
    fragments_path.write_text(json.dumps({"fragments": _fragments()}), encoding="utf-8")
    current_path = tmp_path / "current.json"
    current_path.write_text(json.dumps({"client_nom": "Dupont"}), encoding="utf-8")

    pipeline = ReconciliationPipeline(Config())
    record = pipeline.consolidate(load_fragments(fragments_path), date(2023, 1, 15))
    out = write_json(record, tmp_path / "out" / "record.json")

    reloaded = load_record(out)
    assert reloaded == record
    assert load_current(current_path).client_nom == "Dupont"


def test_load_fragments_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_fragments(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps("nope"), encoding="utf-8")
    with pytest.raises(ValueError):
        load_fragments(bad)
