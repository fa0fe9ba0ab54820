"""Coded taxonomies required by the Exade pricing service.

Each taxonomy is an ordered list of entries; declaration order matters because the
code mapper keeps the first entry when two entries tie on score. The built-in
tables mirror the Exade web service documentation (v3.8). A YAML file can replace
individual taxonomies (see ``TaxonomyRegistry.from_yaml``).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Tuple

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

PROFESSIONAL_CATEGORY = "professional_category"
LOAN_TYPE = "loan_type"
FINANCING_PURPOSE = "financing_purpose"
MEMBERSHIP_TYPE = "membership_type"
CIVILITY = "civility"
INSURANCE_FREQUENCY = "insurance_frequency"
CREDIT_TYPE = "credit_type"


class TaxonomyEntry(BaseModel):
    """One code of a taxonomy with its known aliases."""

    model_config = ConfigDict(frozen=True)

    code: int
    name: str
    labels: Tuple[str, ...] = Field(default_factory=tuple)

    def all_labels(self) -> Tuple[str, ...]:
        """Canonical name first, then aliases (duplicates kept out)."""
        seen = [self.name]
        for label in self.labels:
            if label not in seen:
                seen.append(label)
        return tuple(seen)


class Taxonomy(BaseModel):
    """Ordered set of entries with unique codes."""

    model_config = ConfigDict(frozen=True)

    name: str
    entries: Tuple[TaxonomyEntry, ...]

    @model_validator(mode="after")
    def _check_unique_codes(self) -> "Taxonomy":
        codes = [entry.code for entry in self.entries]
        duplicates = sorted({code for code in codes if codes.count(code) > 1})
        if duplicates:
            raise ValueError(f"Taxonomy '{self.name}' declares duplicate codes: {duplicates}")
        return self

    def get(self, code: int) -> TaxonomyEntry | None:
        for entry in self.entries:
            if entry.code == code:
                return entry
        return None

    @property
    def codes(self) -> List[int]:
        return [entry.code for entry in self.entries]


_DEFAULT_TABLES: Dict[str, List[Tuple[int, str, Tuple[str, ...]]]] = {
    PROFESSIONAL_CATEGORY: [
        (1, "Salarié cadre", (
            "salarie cadre", "cadre", "cadre superieur", "cadre dirigeant",
            "ingenieur", "manager", "directeur",
        )),
        (2, "Salarié non cadre", (
            "salarie non cadre", "salarie", "employe", "ouvrier", "technicien",
            "agent", "vendeur", "assistant", "secretaire", "operateur",
        )),
        (3, "Profession libérale", (
            "profession liberale", "liberal", "avocat", "notaire",
            "expert comptable", "architecte", "consultant",
        )),
        (4, "Chirurgien", ("chirurgien",)),
        (5, "Chirurgien-dentiste", ("chirurgien dentiste", "dentiste")),
        (6, "Médecin spécialiste", (
            "medecin specialiste", "medecin", "docteur", "cardiologue",
            "dermatologue", "radiologue", "psychiatre", "ophtalmologue",
        )),
        (7, "Vétérinaire", ("veterinaire",)),
        (8, "Artisan", (
            "artisan", "plombier", "electricien", "menuisier", "boulanger",
            "patissier", "coiffeur",
        )),
        (9, "Commerçant", (
            "commercant", "gerant", "chef d entreprise", "entrepreneur",
            "auto entrepreneur",
        )),
        (10, "Retraité, pré-retraité", ("retraite", "pre retraite", "pensionnaire")),
        (11, "Sans activité professionnelle", (
            "sans activite professionnelle", "sans activite", "chomeur",
            "demandeur d emploi", "etudiant", "au foyer", "homme au foyer",
            "femme au foyer",
        )),
    ],
    LOAN_TYPE: [
        (1, "Amortissable", (
            "amortissable", "pret amortissable", "credit amortissable",
            "pret immobilier", "immobilier", "pret habitat",
        )),
        (2, "In fine", ("in fine", "pret in fine")),
        (3, "Relais", ("relais", "pret relais", "credit relais")),
        (4, "Crédit-bail", ("credit bail", "leasing")),
        (5, "LOA", ("loa", "location avec option d achat")),
        (6, "Taux 0%", ("taux 0", "ptz", "pret taux zero", "pret a taux zero")),
        (7, "Palier", ("palier", "pret a paliers")),
        (8, "Prêt d'honneur", ("pret d honneur", "pret honneur")),
        (9, "Restructuration", (
            "restructuration", "rachat de credit", "rachat credit",
            "regroupement de credits",
        )),
        (10, "Amortissable professionnel", (
            "amortissable professionnel", "pret professionnel", "credit professionnel",
        )),
    ],
    FINANCING_PURPOSE: [
        (1, "Résidence principale", (
            "residence principale", "achat residence principale",
            "acquisition residence principale", "rp", "habitation principale",
        )),
        (2, "Résidence secondaire", (
            "residence secondaire", "achat residence secondaire",
            "acquisition residence secondaire", "rs",
        )),
        (3, "Travaux", ("travaux", "pret travaux", "renovation", "amenagement")),
        (4, "Investissement locatif", (
            "investissement locatif", "locatif", "achat locatif", "location",
        )),
        (5, "Crédit professionnel", (
            "professionnel", "pret professionnel", "credit professionnel", "entreprise",
        )),
        (6, "Autre projet", (
            "divers", "objet divers", "credit conso", "consommation", "pret personnel",
        )),
        (7, "Construction", ("construction", "construction maison", "faire construire", "vefa")),
        (8, "Restructuration", ("restructuration", "rachat de credit", "rachat", "regroupement")),
    ],
    MEMBERSHIP_TYPE: [
        (0, "Nouveau prêt", ("nouveau pret", "nouveau", "new")),
        (3, "Résiliation Banque", ("resiliation banque", "substitution banque")),
        (4, "Résiliation délégation", (
            "resiliation delegation", "substitution", "delegation",
        )),
    ],
    CIVILITY: [
        (1, "M", ("monsieur", "mr")),
        (2, "Mme", ("madame",)),
        (3, "Mlle", ("mademoiselle",)),
    ],
    INSURANCE_FREQUENCY: [
        (12, "Mensuel", ("mensuel", "mensuelle", "par mois")),
        (4, "Trimestriel", ("trimestriel", "trimestrielle")),
        (2, "Semestriel", ("semestriel", "semestrielle")),
        (1, "Annuel", ("annuel", "annuelle")),
        (10, "Prime unique", ("prime unique", "unique")),
    ],
    CREDIT_TYPE: [
        (0, "Immobilier", ("immobilier", "pret immobilier", "habitat")),
        (1, "Non immobilier", (
            "non immobilier", "consommation", "personnel", "auto", "voiture", "moto",
            "travaux legers", "equipement", "mobilier", "voyage",
        )),
    ],
}


def _build_taxonomy(name: str, rows: List[Tuple[int, str, Tuple[str, ...]]]) -> Taxonomy:
    entries = tuple(TaxonomyEntry(code=code, name=label, labels=aliases) for code, label, aliases in rows)
    return Taxonomy(name=name, entries=entries)


def _parse_yaml_taxonomy(name: str, raw: Any) -> Taxonomy:
    if not isinstance(raw, list):
        raise ValueError(f"Taxonomy '{name}' must be a list of entries.")
    entries = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValueError(f"Taxonomy '{name}' entries must be mappings, got {item!r}")
        entries.append(
            TaxonomyEntry(
                code=item["code"],
                name=item.get("name") or str(item["code"]),
                labels=tuple(item.get("labels") or ()),
            )
        )
    return Taxonomy(name=name, entries=tuple(entries))


class TaxonomyRegistry(Mapping[str, Taxonomy]):
    """Immutable name → taxonomy lookup, built once and shared by reference."""

    def __init__(self, taxonomies: Mapping[str, Taxonomy]) -> None:
        self._taxonomies: Mapping[str, Taxonomy] = MappingProxyType(dict(taxonomies))

    def __getitem__(self, name: str) -> Taxonomy:
        try:
            return self._taxonomies[name]
        except KeyError:
            raise KeyError(
                f"Unknown taxonomy '{name}'. Known taxonomies: {sorted(self._taxonomies)}"
            ) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._taxonomies)

    def __len__(self) -> int:
        return len(self._taxonomies)

    @classmethod
    def default(cls) -> "TaxonomyRegistry":
        """Registry with the built-in Exade tables, built once per process."""
        return _default_registry()

    @classmethod
    def from_yaml(cls, path: str | Path | None) -> "TaxonomyRegistry":
        """Load taxonomy overrides from YAML on top of the built-in tables.

        The file maps taxonomy names to entry lists; a listed taxonomy replaces the
        built-in one entirely, unlisted taxonomies keep their defaults.
        """
        base = cls.default()
        if path is None:
            return base

        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"Taxonomy file not found: {source}")

        loaded = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Taxonomy file must be a mapping of taxonomy name -> entries.")

        merged: Dict[str, Taxonomy] = dict(base._taxonomies)
        for name, raw in loaded.items():
            merged[name] = _parse_yaml_taxonomy(name, raw)

        logger.info("Loaded {} taxonomy override(s) from {}", len(loaded), source)
        return cls(merged)


@lru_cache(maxsize=1)
def _default_registry() -> TaxonomyRegistry:
    return TaxonomyRegistry(
        {name: _build_taxonomy(name, rows) for name, rows in _DEFAULT_TABLES.items()}
    )
