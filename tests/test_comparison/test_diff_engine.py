from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict

import pytest
from pytest import approx

from src.comparison.diff_engine import DiffEngine, format_value
from src.comparison.models import CurrentClientData
from src.extraction.consolidator import ConsolidatedRecord, consolidate
from src.extraction.models import ExtractionFragment
from src.utils.config import ComparisonConfig

_AS_OF = date(2023, 3, 15)


def _record(
    principal: Dict[str, Any] | None = None,
    conjoint: Dict[str, Any] | None = None,
    pret: Dict[str, Any] | None = None,
    confidence: float = 0.9,
) -> ConsolidatedRecord:
    fragment = ExtractionFragment.model_validate(
        {
            "type": "offrePret",
            "principal": principal,
            "conjoint": conjoint,
            "pret": pret,
            "tableauAmortissement": [
                {"numero": 1, "date": "2023-01-01", "capitalRestantDu": 100000},
                {"numero": 2, "date": "2023-02-01", "capitalRestantDu": 99500},
                {"numero": 3, "date": "2023-04-01", "capitalRestantDu": 99000},
            ],
            "metadata": {"confidence": confidence},
        }
    )
    return consolidate([fragment], _AS_OF)


def test_equal_name_produces_no_difference() -> None:
    report = DiffEngine().compare(_record({"nom": "Dupont"}), {"client_nom": "Dupont"})

    assert report.get("principal.nom") is None
    assert report.principal_diffs == []


def test_missing_current_value_is_new() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont", "email": "a@b.com"}),
        {"client_nom": "Dupont", "client_email": None},
    )

    assert len(report.principal_diffs) == 1
    diff = report.principal_diffs[0]
    assert diff.key == "principal.email"
    assert diff.is_new is True
    assert diff.is_different is False
    assert diff.label == "Email"
    assert diff.extracted_value == "a@b.com"


def test_changed_value_is_different() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont", "prenom": "Jean"}),
        {"client_nom": "Dupond", "client_prenom": "Jean"},
    )

    diff = report.get("principal.nom")
    assert diff.is_different is True
    assert diff.is_new is False
    assert diff.current_value == "Dupond"
    assert report.has_client_differences is True


def test_loan_only_differences_count_as_client_differences() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont"}, pret={"banquePreteuse": "Banque Populaire"}),
        {"client_nom": "Dupont"},
    )

    assert report.principal_diffs == []
    assert report.conjoint_diffs == []
    assert report.get("pret.banquePreteuse").is_new
    assert report.has_client_differences is True
    assert report.total_differences == len(report.loan_diffs)


def test_no_differences_when_store_matches_record() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont"}),
        {"client_nom": "Dupont", "capital_restant_du": 99000.0, "duree_restante_mois": 0},
    )

    assert report.total_differences == 0
    assert report.has_client_differences is False


def test_absent_extracted_value_is_omitted() -> None:
    report = DiffEngine().compare(_record({"nom": "Dupont"}), {"client_email": "a@b.com"})

    assert report.get("principal.email") is None


def test_single_detected_against_couple_dossier_is_a_mismatch() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont"}),
        {"dossier_type": "couple", "client_nom": "Dupont", "conjoint_nom": None},
    )

    assert report.detected_type == "seul"
    assert report.current_type == "couple"
    assert report.has_type_mismatch is True
    assert report.conjoint_diffs == []
    assert report.confidence == approx(0.8)


def test_co_borrower_fields_are_new_for_single_dossier() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont"}, conjoint={"nom": "Durand", "prenom": "Marie"}),
        {"dossier_type": "seul", "client_nom": "Dupont", "conjoint_nom": "Ancien"},
    )

    assert report.detected_type == "couple"
    assert report.has_type_mismatch is True
    assert [d.key for d in report.conjoint_diffs] == ["conjoint.nom", "conjoint.prenom"]
    assert all(d.is_new and not d.is_different for d in report.conjoint_diffs)


def test_co_borrower_fields_compared_for_couple_dossier() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont"}, conjoint={"nom": "DURAND", "prenom": "Maria"}),
        {
            "dossier_type": "couple",
            "client_nom": "Dupont",
            "conjoint_nom": "Durand",
            "conjoint_prenom": "Marie",
        },
    )

    assert report.has_type_mismatch is False
    assert [d.key for d in report.conjoint_diffs] == ["conjoint.prenom"]
    assert report.conjoint_diffs[0].is_different


def test_numeric_tolerance() -> None:
    engine = DiffEngine()
    record = _record(pret={"coutAssuranceMensuel": 150.0})

    same = engine.compare(record, {"cout_mensuel": 150.004})
    changed = engine.compare(record, {"cout_mensuel": 150.02})

    assert same.get("pret.coutAssuranceMensuel") is None
    assert changed.get("pret.coutAssuranceMensuel").is_different


def test_calculated_loan_values_are_compared() -> None:
    report = DiffEngine().compare(
        _record(), {"capital_restant_du": 99000.0, "duree_restante_mois": 2}
    )

    assert report.get("pret.capitalRestantDu") is None
    diff = report.get("pret.dureeRestanteMois")
    assert diff.is_different
    assert diff.extracted_value == 0


def test_coded_fields_compared_by_code() -> None:
    report = DiffEngine().compare(
        _record({"civilite": "M", "categorieProfessionnelle": "Cadre"}, pret={"typePret": "relais"}),
        {"client_civilite": "Monsieur", "categorie_professionnelle": 2, "type_pret_code": 3},
    )

    assert report.get("principal.civilite") is None
    diff = report.get("principal.categorieProfessionnelle")
    assert diff.is_different
    assert diff.current_value == 2
    assert diff.extracted_value == 1
    assert report.get("pret.typePret") is None


def test_civility_change_uses_canonical_value() -> None:
    report = DiffEngine().compare(_record({"civilite": "Madame"}), {"client_civilite": "M"})

    diff = report.get("principal.civilite")
    assert diff.is_different
    assert diff.extracted_value == "Mme"


def test_unresolved_codes_are_skipped_and_penalized() -> None:
    report = DiffEngine().compare(
        _record({"nom": "Dupont", "categorieProfessionnelle": "astronaute"}),
        {"client_nom": "Dupont", "categorie_professionnelle": 2},
    )

    assert report.get("principal.categorieProfessionnelle") is None
    assert report.unresolved_fields == ["principal.categorieProfessionnelle"]
    assert report.confidence == approx(0.85)


def test_dates_and_identifiers_are_normalized() -> None:
    report = DiffEngine().compare(
        _record(
            {
                "dateNaissance": "12/05/1980",
                "email": "Jean.Dupont@Mail.com ",
                "telephone": "06 12 34 56 78",
                "fumeur": "non",
            }
        ),
        {
            "client_date_naissance": "1980-05-12",
            "client_email": "jean.dupont@mail.com",
            "client_telephone": "0612345678",
            "client_fumeur": True,
        },
    )

    assert [d.key for d in report.principal_diffs] == ["principal.fumeur"]


def test_store_timestamps_compare_by_day() -> None:
    report = DiffEngine().compare(
        _record({"dateNaissance": "1980-05-01"}, pret={"dateDebut": "01/02/2020"}),
        {
            "client_date_naissance": "1980-05-01T10:30:00Z",
            "date_debut": datetime(2020, 2, 1, 8, 45),
        },
    )

    assert report.get("principal.dateNaissance") is None
    assert report.get("pret.dateDebut") is None


def test_store_dates_accept_timestamps_and_blanks() -> None:
    current = CurrentClientData.model_validate(
        {
            "client_date_naissance": "1980-05-01 00:00:00",
            "conjoint_date_naissance": "",
            "date_fin": "2040-01-31T00:00:00+01:00",
        }
    )

    assert current.client_date_naissance == date(1980, 5, 1)
    assert current.conjoint_date_naissance is None
    assert current.date_fin == date(2040, 1, 31)

    with pytest.raises(ValueError):
        CurrentClientData.model_validate({"date_debut": "not a date"})


def test_confidence_is_clamped() -> None:
    report = DiffEngine().compare(_record({"nom": "Dupont"}, confidence=0.05), {"dossier_type": "couple"})

    assert report.confidence == 0.0


def test_loan_comparison_can_be_disabled() -> None:
    engine = DiffEngine(config=ComparisonConfig(compare_loan=False))

    report = engine.compare(_record(pret={"montantInitial": 1000}), {})

    assert report.loan_diffs == []


def test_compare_is_deterministic() -> None:
    engine = DiffEngine()
    record = _record({"nom": "Dupont", "email": "a@b.com"}, conjoint={"nom": "Durand"})
    current = CurrentClientData(client_nom="Dupond", dossier_type="seul")

    assert engine.compare(record, current) == engine.compare(record, current)


def test_invalid_inputs_raise_value_error() -> None:
    engine = DiffEngine()

    with pytest.raises(ValueError):
        engine.compare(None, {})  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        engine.compare(_record(), "not a row")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        engine.compare(_record(), {"dossier_type": "trio"})


def test_report_summary_mentions_mismatch() -> None:
    report = DiffEngine().compare(_record(), {"dossier_type": "couple"})

    assert "mismatch" in report.summary()
    assert report.total_differences == len(report.all_diffs)


def test_format_value() -> None:
    assert format_value(None) == "-"
    assert format_value("  ") == "-"
    assert format_value(date(1980, 5, 12), "dateNaissance") == "12/05/1980"
    assert format_value(True, "fumeur") == "Fumeur"
    assert format_value(False, "fumeur") == "Non-fumeur"
    assert format_value(150.5) == "150.50"
    assert format_value(240.0) == "240"
    assert format_value("Mme", "civilite") == "Mme"
