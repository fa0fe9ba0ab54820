"""Extraction fragment models produced by the upstream document extractor.

The extractor emits one fragment per document (loan offer, amortization schedule,
identity document) using French camelCase keys; those keys are accepted as
aliases while the models expose snake_case attributes. Unreadable dates and
numbers are turned into ``None`` and listed in ``malformed_fields`` instead of
failing validation, because extraction output is inherently noisy.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from src.extraction.parsing import parse_amount, parse_bool, parse_date, parse_int, parse_text


class DocumentType(str, Enum):
    """Kinds of documents the extractor reads."""

    LOAN_OFFER = "offrePret"
    AMORTIZATION_SCHEDULE = "tableauAmortissement"
    IDENTITY_DOCUMENT = "carteIdentite"


class ExtractionMetadata(BaseModel):
    """Confidence and diagnostics attached to every extracted object."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    warnings: List[str] = Field(default_factory=list)
    sources_used: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sources_used", "sourcesUtilisees", "sourcesUsed"),
    )
    missing_fields: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("missing_fields", "champsManquants", "missingFields"),
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        number = parse_amount(value)
        if number is None:
            return 0.0
        # Some extractors report percentages.
        if number > 1.0 and number <= 100.0:
            number = number / 100.0
        return max(0.0, min(1.0, number))


class _LenientModel(BaseModel):
    """Base for fragment parts whose scalar fields are parsed leniently."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    _parsers: ClassVar[Dict[str, Callable[[Any], Any]]] = {}

    malformed_fields: List[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _parse_scalars(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        parsed = dict(data)
        malformed: List[str] = list(parsed.get("malformed_fields") or [])
        for name, parser in cls._parsers.items():
            field = cls.model_fields[name]
            keys = [name] + ([field.alias] if field.alias else [])
            for key in keys:
                if key not in parsed:
                    continue
                raw = parsed[key]
                value = parser(raw)
                if value is None and parse_text(raw) is not None:
                    label = field.alias or name
                    malformed.append(label)
                    logger.debug("Ignoring unreadable value for {}: {!r}", label, raw)
                parsed[key] = value
        parsed["malformed_fields"] = malformed
        return parsed

    def populated_fields(self) -> List[str]:
        """Names of fields carrying a value."""
        return [
            name
            for name in type(self).model_fields
            if name != "malformed_fields" and getattr(self, name) is not None
        ]

    def has_data(self) -> bool:
        return bool(self.populated_fields())


def _coded(value: Any) -> Any:
    """Keep codes as given (int or text); blank strings are absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return parse_text(value)


class BorrowerInfo(_LenientModel):
    """Identity and profile of one borrower as read from a document."""

    _parsers: ClassVar[Dict[str, Callable[[Any], Any]]] = {
        "birth_date": parse_date,
        "smoker": parse_bool,
        "civility": parse_text,
        "last_name": parse_text,
        "first_name": parse_text,
        "birth_name": parse_text,
        "professional_category": _coded,
        "profession": parse_text,
        "email": parse_text,
        "phone": parse_text,
    }

    civility: Optional[str] = Field(default=None, alias="civilite")
    last_name: Optional[str] = Field(default=None, alias="nom")
    first_name: Optional[str] = Field(default=None, alias="prenom")
    birth_name: Optional[str] = Field(default=None, alias="nomNaissance")
    birth_date: Optional[date] = Field(default=None, alias="dateNaissance")
    smoker: Optional[bool] = Field(default=None, alias="fumeur")
    professional_category: Optional[int | str] = Field(
        default=None, alias="categorieProfessionnelle"
    )
    profession: Optional[str] = Field(default=None, alias="profession")
    email: Optional[str] = Field(default=None, alias="email")
    phone: Optional[str] = Field(default=None, alias="telephone")


class LoanTerms(_LenientModel):
    """Loan conditions as read from a loan offer or schedule header."""

    _parsers: ClassVar[Dict[str, Callable[[Any], Any]]] = {
        "initial_amount": parse_amount,
        "initial_duration_months": parse_int,
        "start_date": parse_date,
        "end_date": parse_date,
        "nominal_rate": parse_amount,
        "monthly_insurance_cost": parse_amount,
        "lender": parse_text,
        "loan_type": _coded,
        "financing_purpose": _coded,
        "membership_type": _coded,
        "insurance_frequency": _coded,
        "credit_type": _coded,
    }

    initial_amount: Optional[float] = Field(default=None, alias="montantInitial")
    initial_duration_months: Optional[int] = Field(default=None, alias="dureeInitialeMois")
    start_date: Optional[date] = Field(default=None, alias="dateDebut")
    end_date: Optional[date] = Field(default=None, alias="dateFin")
    nominal_rate: Optional[float] = Field(default=None, alias="tauxNominal")
    lender: Optional[str] = Field(default=None, alias="banquePreteuse")
    loan_type: Optional[int | str] = Field(default=None, alias="typePret")
    financing_purpose: Optional[int | str] = Field(default=None, alias="objetFinancement")
    monthly_insurance_cost: Optional[float] = Field(default=None, alias="coutAssuranceMensuel")
    membership_type: Optional[int | str] = Field(default=None, alias="typeAdhesion")
    insurance_frequency: Optional[int | str] = Field(default=None, alias="fracAssurance")
    credit_type: Optional[int | str] = Field(default=None, alias="typeCredit")


class AmortizationRow(BaseModel):
    """One installment of an amortization schedule."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    installment_number: int = Field(alias="numero")
    due_date: date = Field(alias="date")
    remaining_principal: float = Field(alias="capitalRestantDu")
    interest: float = Field(default=0.0, alias="interets")
    insurance: float = Field(default=0.0, alias="assurance")
    principal: float = Field(default=0.0, alias="capital")
    total_payment: float = Field(default=0.0, alias="mensualite")


_ROW_REQUIRED = {
    "installment_number": ("numero", parse_int),
    "due_date": ("date", parse_date),
    "remaining_principal": ("capitalRestantDu", parse_amount),
}
_ROW_OPTIONAL = {
    "interest": ("interets", parse_amount),
    "insurance": ("assurance", parse_amount),
    "principal": ("capital", parse_amount),
    "total_payment": ("mensualite", parse_amount),
}


def _parse_row(raw: Any) -> Dict[str, Any] | None:
    """Parse a raw schedule row; None when a required column is unreadable."""
    if isinstance(raw, AmortizationRow):
        return raw.model_dump()
    if not isinstance(raw, dict):
        return None

    row: Dict[str, Any] = {}
    for name, (alias, parser) in _ROW_REQUIRED.items():
        value = parser(raw.get(name, raw.get(alias)))
        if value is None:
            return None
        row[name] = value
    for name, (alias, parser) in _ROW_OPTIONAL.items():
        value = parser(raw.get(name, raw.get(alias)))
        if value is not None:
            row[name] = value
    return row


class ExtractionFragment(BaseModel):
    """Everything extracted from a single document."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    document_type: DocumentType = Field(alias="type")
    document_id: Optional[str] = None
    principal: Optional[BorrowerInfo] = None
    co_borrower: Optional[BorrowerInfo] = Field(default=None, alias="conjoint")
    loan: Optional[LoanTerms] = Field(default=None, alias="pret")
    amortization: List[AmortizationRow] = Field(
        default_factory=list, alias="tableauAmortissement"
    )
    insured_count: Optional[int] = Field(default=None, alias="nombreAssures")
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)
    dropped_rows: int = Field(default=0, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _unwrap_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        parsed = dict(data)
        borrowers = parsed.pop("emprunteurs", None)
        if isinstance(borrowers, dict):
            parsed.setdefault("principal", borrowers.get("principal"))
            parsed.setdefault("conjoint", borrowers.get("conjoint"))

        for key in ("amortization", "tableauAmortissement"):
            if key not in parsed:
                continue
            rows = parsed.pop(key) or []
            kept = [row for row in (_parse_row(raw) for raw in rows) if row is not None]
            parsed["amortization"] = kept
            parsed["dropped_rows"] = len(rows) - len(kept)

        if "nombreAssures" in parsed or "insured_count" in parsed:
            key = "nombreAssures" if "nombreAssures" in parsed else "insured_count"
            parsed[key] = parse_int(parsed[key])
        return parsed

    @property
    def source_label(self) -> str:
        if self.document_id:
            return f"{self.document_type.value}:{self.document_id}"
        return self.document_type.value
