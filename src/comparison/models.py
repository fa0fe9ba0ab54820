"""Models for comparing a consolidated record with the system of record."""

from __future__ import annotations

from datetime import date
from typing import Any, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.extraction.consolidator import ConsolidatedRecord, DossierType
from src.extraction.parsing import parse_date

Category = Literal["principal", "conjoint", "pret"]


class CurrentClientData(BaseModel):
    """Snapshot of the client store row, keyed by store column names."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    dossier_type: DossierType = "seul"

    client_civilite: Optional[str] = None
    client_nom: Optional[str] = None
    client_prenom: Optional[str] = None
    client_nom_naissance: Optional[str] = None
    client_date_naissance: Optional[date] = None
    client_fumeur: Optional[bool] = None
    categorie_professionnelle: Optional[int] = None
    client_email: Optional[str] = None
    client_telephone: Optional[str] = None

    conjoint_civilite: Optional[str] = None
    conjoint_nom: Optional[str] = None
    conjoint_prenom: Optional[str] = None
    conjoint_nom_naissance: Optional[str] = None
    conjoint_date_naissance: Optional[date] = None
    conjoint_fumeur: Optional[bool] = None
    conjoint_categorie_professionnelle: Optional[int] = None
    conjoint_email: Optional[str] = None
    conjoint_telephone: Optional[str] = None

    banque_preteuse: Optional[str] = None
    montant_capital: Optional[float] = None
    duree_mois: Optional[int] = None
    taux_nominal: Optional[float] = None
    date_debut: Optional[date] = None
    date_fin: Optional[date] = None
    type_pret_code: Optional[int] = None
    objet_financement_code: Optional[int] = None
    cout_mensuel: Optional[float] = None
    capital_restant_du: Optional[float] = None
    duree_restante_mois: Optional[int] = None

    @field_validator(
        "client_date_naissance", "conjoint_date_naissance", "date_debut", "date_fin", mode="before"
    )
    @classmethod
    def _day_granularity(cls, value: Any) -> Any:
        # Store timestamps compare by calendar day.
        if value is None or isinstance(value, str) and not value.strip():
            return None
        parsed = parse_date(value)
        return value if parsed is None else parsed


class FieldDifference(BaseModel):
    """One field whose extracted value is new or differs from the store."""

    model_config = ConfigDict(frozen=True)

    field: str
    label: str
    category: Category
    current_value: Any = None
    extracted_value: Any = None
    is_different: bool = False
    is_new: bool = False

    @property
    def key(self) -> str:
        return f"{self.category}.{self.field}"


class DiffReport(BaseModel):
    """Result of comparing extracted data with the current client data."""

    model_config = ConfigDict(frozen=True)

    has_client_differences: bool
    has_type_mismatch: bool
    current_type: DossierType
    detected_type: DossierType
    principal_diffs: List[FieldDifference] = Field(default_factory=list)
    conjoint_diffs: List[FieldDifference] = Field(default_factory=list)
    loan_diffs: List[FieldDifference] = Field(default_factory=list)
    missing_fields: List[str] = Field(default_factory=list)
    unresolved_fields: List[str] = Field(default_factory=list)
    total_differences: int = 0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def all_diffs(self) -> List[FieldDifference]:
        return [*self.principal_diffs, *self.conjoint_diffs, *self.loan_diffs]

    def get(self, key: str) -> FieldDifference | None:
        """Look up a difference by its ``category.field`` key."""
        for diff in self.all_diffs:
            if diff.key == key:
                return diff
        return None

    def summary(self) -> str:
        """Return a human-readable summary of the comparison."""
        text = (
            f"Diff Report: {len(self.principal_diffs)} principal, "
            f"{len(self.conjoint_diffs)} conjoint, "
            f"{len(self.loan_diffs)} loan difference(s); "
            f"{len(self.missing_fields)} missing, confidence {self.confidence:.2f}."
        )
        if self.has_type_mismatch:
            text += f" Dossier type mismatch: {self.current_type} -> {self.detected_type}."
        return text


class ApplyChangesPayload(BaseModel):
    """Reviewer decision: which differences to write back to the store."""

    model_config = ConfigDict(frozen=True)

    selected_fields: FrozenSet[str] = Field(default_factory=frozenset)
    update_type: bool = False
    new_type: Optional[DossierType] = None
    extracted_data: ConsolidatedRecord
