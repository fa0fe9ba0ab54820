from __future__ import annotations

from datetime import date

import pytest

from src.comparison.diff_engine import DiffEngine
from src.comparison.review_payload import build_apply_payload, to_store_update
from src.extraction.consolidator import ConsolidatedRecord, consolidate
from src.extraction.models import ExtractionFragment


def _record() -> ConsolidatedRecord:
    fragment = ExtractionFragment.model_validate(
        {
            "type": "offrePret",
            "principal": {
                "nom": "Dupont",
                "dateNaissance": "12/05/1980",
                "categorieProfessionnelle": "Cadre",
            },
            "conjoint": {"nom": "Durand", "prenom": "Marie", "civilite": "Madame"},
            "pret": {"coutAssuranceMensuel": "42,10"},
            "tableauAmortissement": [
                {"numero": 1, "date": "2023-01-01", "capitalRestantDu": 100000},
                {"numero": 2, "date": "2023-02-01", "capitalRestantDu": 99500},
            ],
            "metadata": {"confidence": 0.9},
        }
    )
    return consolidate([fragment], date(2023, 1, 15))


def test_payload_maps_selected_keys_to_store_columns() -> None:
    record = _record()
    report = DiffEngine().compare(record, {"client_nom": "Dupond", "dossier_type": "seul"})

    payload = build_apply_payload(
        report,
        record,
        [
            "principal.nom",
            "principal.dateNaissance",
            "principal.categorieProfessionnelle",
            "conjoint.civilite",
            "conjoint.nom",
            "pret.coutAssuranceMensuel",
            "pret.capitalRestantDu",
        ],
        update_type=True,
    )
    update = to_store_update(payload)

    assert payload.new_type == "couple"
    assert update == {
        "client_nom": "Dupont",
        "client_date_naissance": date(1980, 5, 12),
        "categorie_professionnelle": 1,
        "conjoint_civilite": "Mme",
        "conjoint_nom": "Durand",
        "cout_mensuel": 42.1,
        "capital_restant_du": 99500.0,
        "dossier_type": "couple",
    }


def test_unselected_fields_and_type_are_left_alone() -> None:
    record = _record()
    report = DiffEngine().compare(record, {"client_nom": "Dupond"})

    payload = build_apply_payload(report, record, ["principal.nom"])

    assert payload.update_type is False
    assert payload.new_type is None
    assert to_store_update(payload) == {"client_nom": "Dupont"}


def test_unknown_selection_is_rejected() -> None:
    record = _record()
    report = DiffEngine().compare(record, {"client_nom": "Dupont"})

    with pytest.raises(ValueError, match="principal.nom"):
        build_apply_payload(report, record, ["principal.nom"])
    with pytest.raises(ValueError, match="pret.inconnu"):
        build_apply_payload(report, record, ["pret.inconnu"])
