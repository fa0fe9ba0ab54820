"""Tests for label normalization and similarity scoring."""

from __future__ import annotations

import pytest
from pytest import approx

from src.normalization.string_normalizer import StringNormalizer, normalize, similarity
from src.utils.config import NormalizationConfig


def test_normalize_folds_case_accents_and_punctuation() -> None:
    assert normalize("  Salarié Non-Cadre ") == "salarie non cadre"
    assert normalize("Résidence   principale!") == "residence principale"
    assert normalize("Prêt d'honneur") == "pret d honneur"


def test_normalize_empty_inputs() -> None:
    assert normalize(None) == ""
    assert normalize("") == ""
    assert normalize("   ") == ""
    assert normalize("---") == ""


@pytest.mark.parametrize(
    "text",
    ["Chef d'Entreprise", "ÉTUDIANT", "  taux 0 % ", "Mme.", "", "Crédit-bail / LOA"],
)
def test_normalize_is_idempotent(text: str) -> None:
    once = normalize(text)
    assert normalize(once) == once


def test_similarity_identity_and_empty() -> None:
    assert similarity("Cadre", "cadre") == 1.0
    assert similarity("Médecin", "medecin") == 1.0
    assert similarity("", "cadre") == 0.0
    assert similarity("cadre", None) == 0.0
    assert similarity("", "") == 0.0


def test_similarity_containment() -> None:
    assert similarity("cadre superieur", "Cadre") == approx(0.9)
    assert similarity("Cadre", "cadre superieur") == approx(0.9)


def test_similarity_token_dice() -> None:
    # {pret, immobilier} vs {credit, immobilier}: 2*1 / (2+2)
    assert similarity("pret immobilier", "credit immobilier") == approx(0.5)
    assert similarity("achat residence principale", "residence secondaire") == approx(0.4)
    assert similarity("plombier", "boulanger") == 0.0


@pytest.mark.parametrize(
    ("a", "b"),
    [
        ("pret immobilier", "credit immobilier"),
        ("cadre", "cadre superieur"),
        ("", "x"),
        ("a a b", "a b b"),
    ],
)
def test_similarity_is_symmetric(a: str, b: str) -> None:
    assert similarity(a, b) == similarity(b, a)


def test_string_normalizer_uses_configured_containment_score() -> None:
    normalizer = StringNormalizer(NormalizationConfig(containment_score=0.8))

    assert normalizer.similarity("cadre superieur", "cadre") == approx(0.8)
    result = normalizer.normalize("Salarié Cadre")
    assert result.original == "Salarié Cadre"
    assert result.normalized == "salarie cadre"
    assert result.tokens == ["salarie", "cadre"]


def test_normalize_batch_and_equivalent() -> None:
    normalizer = StringNormalizer()

    results = normalizer.normalize_batch(["Nouveau Prêt", None])

    assert [r.normalized for r in results] == ["nouveau pret", ""]
    assert normalizer.equivalent("DUPONT", " dupont ")
    assert not normalizer.equivalent("", "")
