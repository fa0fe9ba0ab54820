"""Merge per-document extraction fragments into one consolidated record.

Merging is field-scoped: every logical field (``principal.nom``,
``pret.montantInitial``, the amortization schedule as a whole, ...) collects the
present values offered by each fragment.

Conflict resolution:
- The value from the fragment with the highest metadata confidence wins.
- On equal confidence the later fragment in input order wins.
- Differing values across sources add a warning for the reviewer.

Derived loan metrics come from the winning amortization schedule, sorted by
installment number. ``before`` is the last row due on or before the as-of date and
``after`` the first row due after it; the remaining principal is read from
``after`` (falling back to ``before``) and the remaining duration counts the
installments left after ``after``. An empty schedule is a derivation failure.

Coded text fields are resolved through :class:`CodeMapper`; unresolved values are
reported as missing instead of being defaulted.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from src.extraction.models import (
    AmortizationRow,
    BorrowerInfo,
    ExtractionFragment,
    ExtractionMetadata,
    LoanTerms,
)
from src.normalization.code_mapper import CodeMapper, CodeResolution
from src.normalization.string_normalizer import normalize
from src.normalization.taxonomies import (
    CIVILITY,
    CREDIT_TYPE,
    FINANCING_PURPOSE,
    INSURANCE_FREQUENCY,
    LOAN_TYPE,
    MEMBERSHIP_TYPE,
    PROFESSIONAL_CATEGORY,
)
from src.utils.config import ConsolidationConfig

DossierType = Literal["seul", "couple"]

PRINCIPAL = "principal"
CO_BORROWER = "conjoint"
LOAN = "pret"
SCHEDULE = "tableauAmortissement"
INSURED_COUNT = "nombreAssures"

_BORROWER_CODED = {"civility": CIVILITY, "professional_category": PROFESSIONAL_CATEGORY}
_LOAN_CODED = {
    "loan_type": LOAN_TYPE,
    "financing_purpose": FINANCING_PURPOSE,
    "membership_type": MEMBERSHIP_TYPE,
    "insurance_frequency": INSURANCE_FREQUENCY,
    "credit_type": CREDIT_TYPE,
}


class DerivationError(ValueError):
    """Raised when loan metrics cannot be derived from the extracted data."""


class ConsolidatedBorrower(BaseModel):
    """Borrower after merge, with coded fields resolved."""

    model_config = ConfigDict(frozen=True)

    civility: Optional[CodeResolution] = None
    last_name: Optional[str] = None
    first_name: Optional[str] = None
    birth_name: Optional[str] = None
    birth_date: Optional[date] = None
    smoker: Optional[bool] = None
    professional_category: Optional[CodeResolution] = None
    profession: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    def has_data(self) -> bool:
        return any(getattr(self, name) is not None for name in type(self).model_fields)


class ConsolidatedLoan(BaseModel):
    """Loan terms after merge, with coded fields resolved."""

    model_config = ConfigDict(frozen=True)

    initial_amount: Optional[float] = None
    initial_duration_months: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    nominal_rate: Optional[float] = None
    lender: Optional[str] = None
    loan_type: Optional[CodeResolution] = None
    financing_purpose: Optional[CodeResolution] = None
    monthly_insurance_cost: Optional[float] = None
    membership_type: Optional[CodeResolution] = None
    insurance_frequency: Optional[CodeResolution] = None
    credit_type: Optional[CodeResolution] = None


class TargetRows(BaseModel):
    """Schedule rows straddling the as-of date."""

    model_config = ConfigDict(frozen=True)

    before: Optional[AmortizationRow] = None
    after: Optional[AmortizationRow] = None


class CalculatedData(BaseModel):
    """Metrics derived from the loan terms and amortization schedule."""

    model_config = ConfigDict(frozen=True)

    effective_start_date: date
    remaining_duration_months: int
    remaining_principal: float


class ConsolidatedRecord(BaseModel):
    """Single coherent view of a dossier built from all its documents."""

    model_config = ConfigDict(frozen=True)

    as_of: date
    principal: Optional[ConsolidatedBorrower] = None
    co_borrower: Optional[ConsolidatedBorrower] = None
    loan: Optional[ConsolidatedLoan] = None
    target_rows: TargetRows
    calculated: CalculatedData
    insured_count: Optional[int] = None
    metadata: ExtractionMetadata
    unresolved_fields: List[str] = Field(default_factory=list)
    field_sources: Dict[str, str] = Field(default_factory=dict)

    @property
    def detected_type(self) -> DossierType:
        if self.co_borrower is not None and self.co_borrower.has_data():
            return "couple"
        return "seul"


class _Candidate:
    """Current winner for one field plus every distinct value seen."""

    def __init__(self, value: Any, confidence: float, index: int, source: str) -> None:
        self.value = value
        self.confidence = confidence
        self.index = index
        self.source = source
        self.seen: List[Tuple[Any, str]] = [(value, source)]

    def offer(self, value: Any, confidence: float, index: int, source: str) -> None:
        if not any(_same_value(value, known) for known, _ in self.seen):
            self.seen.append((value, source))
        if confidence > self.confidence or (confidence == self.confidence and index >= self.index):
            self.value = value
            self.confidence = confidence
            self.index = index
            self.source = source

    @property
    def conflicting(self) -> bool:
        return len(self.seen) > 1


class Consolidator:
    """Merge fragments and derive loan metrics as of a given date."""

    def __init__(
        self,
        code_mapper: CodeMapper | None = None,
        config: ConsolidationConfig | None = None,
    ) -> None:
        self.code_mapper = code_mapper or CodeMapper()
        self.config = config or ConsolidationConfig()

    def consolidate(
        self, fragments: Sequence[ExtractionFragment], as_of: date
    ) -> ConsolidatedRecord:
        """Merge ``fragments`` (priority order, later wins ties) into a record."""
        if isinstance(as_of, datetime):
            as_of = as_of.date()
        if not isinstance(as_of, date):
            raise TypeError(f"as_of must be a date, got {type(as_of).__name__}")

        candidates: Dict[str, _Candidate] = {}
        warnings: List[str] = []
        upstream_missing: List[str] = []
        sources_used: List[str] = []
        confidences: Dict[int, float] = {}

        for index, fragment in enumerate(fragments):
            confidence = fragment.metadata.confidence
            source = fragment.source_label
            confidences[index] = confidence
            _extend_unique(sources_used, [source, *fragment.metadata.sources_used])
            _extend_unique(warnings, fragment.metadata.warnings)
            _extend_unique(upstream_missing, fragment.metadata.missing_fields)

            for section, part in (
                (PRINCIPAL, fragment.principal),
                (CO_BORROWER, fragment.co_borrower),
                (LOAN, fragment.loan),
            ):
                if part is None:
                    continue
                for name in part.populated_fields():
                    path = _path(section, type(part), name)
                    self._offer(candidates, path, getattr(part, name), confidence, index, source)
                for label in part.malformed_fields:
                    warnings.append(f"Valeur illisible ignorée pour {section}.{label} ({source})")

            if fragment.amortization:
                rows = tuple(fragment.amortization)
                self._offer(candidates, SCHEDULE, rows, confidence, index, source)
            if fragment.dropped_rows:
                warnings.append(
                    f"{fragment.dropped_rows} ligne(s) d'amortissement illisible(s) ignorée(s) ({source})"
                )
            if fragment.insured_count is not None:
                self._offer(
                    candidates, INSURED_COUNT, fragment.insured_count, confidence, index, source
                )

        if self.config.warn_on_conflicts:
            for path, candidate in candidates.items():
                if candidate.conflicting and path != SCHEDULE:
                    values = " / ".join(f"'{value}' ({src})" for value, src in candidate.seen)
                    warnings.append(
                        f"Valeurs divergentes pour {path}: {values}; retenu: '{candidate.value}'"
                    )

        values = {path: candidate.value for path, candidate in candidates.items()}
        unresolved: List[str] = []

        principal = self._build_borrower(PRINCIPAL, values, warnings, unresolved)
        co_borrower = self._build_borrower(CO_BORROWER, values, warnings, unresolved)
        if co_borrower is not None:
            self._check_co_borrower(co_borrower, warnings)
        loan = self._build_loan(values, warnings, unresolved)

        schedule: Tuple[AmortizationRow, ...] = values.get(SCHEDULE, ())
        target_rows, calculated = derive_loan_metrics(schedule, as_of, loan)
        if loan is not None and loan.end_date is not None and loan.end_date <= as_of:
            warnings.append("La date effective est postérieure à la date de fin du prêt")

        insured_count = values.get(INSURED_COUNT)
        detected_couple = co_borrower is not None
        if insured_count == 2 and not detected_couple:
            warnings.append("Deux assurés annoncés mais aucun co-emprunteur extrait")
        elif insured_count == 1 and detected_couple:
            warnings.append("Un seul assuré annoncé mais un co-emprunteur a été extrait")

        missing = self._missing_fields(candidates, detected_couple, upstream_missing, unresolved)
        contributing = {candidate.index for candidate in candidates.values()}
        confidence = min((confidences[i] for i in contributing), default=0.0)

        metadata = ExtractionMetadata(
            confidence=confidence,
            warnings=warnings,
            sources_used=sources_used,
            missing_fields=missing,
        )
        record = ConsolidatedRecord(
            as_of=as_of,
            principal=principal,
            co_borrower=co_borrower,
            loan=loan,
            target_rows=target_rows,
            calculated=calculated,
            insured_count=insured_count,
            metadata=metadata,
            unresolved_fields=unresolved,
            field_sources={path: candidate.source for path, candidate in candidates.items()},
        )
        logger.info(
            "Consolidated {} fragment(s): type={}, confidence={:.2f}, missing={}, warnings={}",
            len(fragments),
            record.detected_type,
            confidence,
            len(missing),
            len(warnings),
        )
        return record

    def _offer(
        self,
        candidates: Dict[str, _Candidate],
        path: str,
        value: Any,
        confidence: float,
        index: int,
        source: str,
    ) -> None:
        if path in candidates:
            candidates[path].offer(value, confidence, index, source)
        else:
            candidates[path] = _Candidate(value, confidence, index, source)

    def _resolve(
        self,
        path: str,
        taxonomy: str,
        value: Any,
        warnings: List[str],
        unresolved: List[str],
    ) -> CodeResolution | None:
        resolution = self.code_mapper.resolve(taxonomy, value)
        if resolution is None:
            return None
        if not resolution.is_resolved:
            unresolved.append(path)
            warnings.append(f"Valeur non reconnue pour {path}: '{resolution.raw_text}'")
        elif resolution.tied_codes:
            warnings.append(
                f"Correspondance ambiguë pour {path}: '{resolution.raw_text}' -> code "
                f"{resolution.code} (ex aequo: {', '.join(map(str, resolution.tied_codes))})"
            )
        return resolution

    def _section_values(
        self, section: str, model: type[BorrowerInfo] | type[LoanTerms], values: Dict[str, Any]
    ) -> Dict[str, Any]:
        found: Dict[str, Any] = {}
        for name in model.model_fields:
            if name == "malformed_fields":
                continue
            path = _path(section, model, name)
            if path in values:
                found[name] = values[path]
        return found

    def _build_borrower(
        self,
        section: str,
        values: Dict[str, Any],
        warnings: List[str],
        unresolved: List[str],
    ) -> ConsolidatedBorrower | None:
        fields = self._section_values(section, BorrowerInfo, values)
        if not fields:
            return None
        for name, taxonomy in _BORROWER_CODED.items():
            if name in fields:
                path = _path(section, BorrowerInfo, name)
                fields[name] = self._resolve(path, taxonomy, fields[name], warnings, unresolved)
        return ConsolidatedBorrower(**fields)

    def _build_loan(
        self, values: Dict[str, Any], warnings: List[str], unresolved: List[str]
    ) -> ConsolidatedLoan | None:
        fields = self._section_values(LOAN, LoanTerms, values)
        if not fields:
            return None
        for name, taxonomy in _LOAN_CODED.items():
            if name in fields:
                path = _path(LOAN, LoanTerms, name)
                fields[name] = self._resolve(path, taxonomy, fields[name], warnings, unresolved)
        return ConsolidatedLoan(**fields)

    @staticmethod
    def _check_co_borrower(co_borrower: ConsolidatedBorrower, warnings: List[str]) -> None:
        if co_borrower.last_name and not co_borrower.first_name:
            warnings.append("Données conjoint incomplètes - nom sans prénom")
        if co_borrower.first_name and not co_borrower.last_name:
            warnings.append("Données conjoint incomplètes - prénom sans nom")

    @staticmethod
    def _missing_fields(
        candidates: Dict[str, _Candidate],
        detected_couple: bool,
        upstream_missing: List[str],
        unresolved: List[str],
    ) -> List[str]:
        missing: List[str] = []
        sections = [(PRINCIPAL, BorrowerInfo), (LOAN, LoanTerms)]
        if detected_couple:
            sections.insert(1, (CO_BORROWER, BorrowerInfo))

        for section, model in sections:
            for name in model.model_fields:
                if name == "malformed_fields":
                    continue
                path = _path(section, model, name)
                if path not in candidates:
                    missing.append(path)

        for name in upstream_missing:
            if name in candidates or any(
                f"{section}.{name}" in candidates for section in (PRINCIPAL, LOAN)
            ):
                continue
            _extend_unique(missing, [name])

        _extend_unique(missing, unresolved)
        return missing


def derive_loan_metrics(
    schedule: Sequence[AmortizationRow],
    as_of: date,
    loan: ConsolidatedLoan | None = None,
) -> Tuple[TargetRows, CalculatedData]:
    """Locate the rows straddling ``as_of`` and compute the remaining loan metrics.

    Raises:
        DerivationError: If the schedule has no rows.
    """
    if isinstance(as_of, datetime):
        as_of = as_of.date()
    rows = sorted(schedule, key=lambda row: row.installment_number)
    if not rows:
        raise DerivationError(
            "Empty amortization schedule: remaining principal cannot be derived"
        )

    before: AmortizationRow | None = None
    after: AmortizationRow | None = None
    for row in rows:
        if row.due_date <= as_of:
            before = row
        elif after is None:
            after = row

    anchor = after or before
    if anchor is None:
        raise DerivationError("No amortization row around the as-of date")
    remaining_duration = 0
    if after is not None:
        remaining_duration = max(0, rows[-1].installment_number - after.installment_number)

    start = loan.start_date if loan is not None and loan.start_date else rows[0].due_date
    calculated = CalculatedData(
        effective_start_date=start,
        remaining_duration_months=remaining_duration,
        remaining_principal=anchor.remaining_principal,
    )
    return TargetRows(before=before, after=after), calculated


def consolidate(
    fragments: Sequence[ExtractionFragment],
    as_of: date,
    *,
    code_mapper: CodeMapper | None = None,
) -> ConsolidatedRecord:
    """Functional entry point around :class:`Consolidator`."""
    return Consolidator(code_mapper=code_mapper).consolidate(fragments, as_of)


def _path(section: str, model: type[BaseModel], name: str) -> str:
    field = model.model_fields[name]
    return f"{section}.{field.alias or name}"


def field_path(section: str, name: str) -> str:
    """Path of a consolidated attribute, e.g. ``("principal", "last_name")`` -> ``principal.nom``."""
    model = LoanTerms if section == LOAN else BorrowerInfo
    return _path(section, model, name)


def _same_value(left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return normalize(left) == normalize(right)
    return left == right


def _extend_unique(target: List[str], items: Sequence[str]) -> None:
    for item in items:
        if item and item not in target:
            target.append(item)
