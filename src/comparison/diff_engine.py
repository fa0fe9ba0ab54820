"""Field-by-field comparison of a consolidated record against the client store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Tuple

from loguru import logger

from src.comparison.models import Category, CurrentClientData, DiffReport, FieldDifference
from src.extraction.consolidator import ConsolidatedRecord
from src.normalization.code_mapper import CodeMapper, CodeResolution
from src.normalization.string_normalizer import normalize
from src.normalization.taxonomies import CIVILITY
from src.utils.config import ComparisonConfig


@dataclass(frozen=True)
class FieldSpec:
    """How one tracked field is read, compared and stored."""

    field: str
    label: str
    attribute: str
    kind: str
    column: str


BORROWER_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("civilite", "Civilité", "civility", "civility", "civilite"),
    FieldSpec("nom", "Nom", "last_name", "name", "nom"),
    FieldSpec("prenom", "Prénom", "first_name", "name", "prenom"),
    FieldSpec("nomNaissance", "Nom de naissance", "birth_name", "name", "nom_naissance"),
    FieldSpec("dateNaissance", "Date de naissance", "birth_date", "date", "date_naissance"),
    FieldSpec("fumeur", "Statut fumeur", "smoker", "bool", "fumeur"),
    FieldSpec(
        "categorieProfessionnelle",
        "Catégorie professionnelle",
        "professional_category",
        "coded",
        "categorie_professionnelle",
    ),
    FieldSpec("email", "Email", "email", "identifier", "email"),
    FieldSpec("telephone", "Téléphone", "phone", "identifier", "telephone"),
)

LOAN_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("banquePreteuse", "Banque prêteuse", "lender", "name", "banque_preteuse"),
    FieldSpec("montantInitial", "Montant initial", "initial_amount", "number", "montant_capital"),
    FieldSpec(
        "dureeInitialeMois", "Durée initiale (mois)", "initial_duration_months", "number", "duree_mois"
    ),
    FieldSpec("tauxNominal", "Taux nominal", "nominal_rate", "number", "taux_nominal"),
    FieldSpec("dateDebut", "Date de début", "start_date", "date", "date_debut"),
    FieldSpec("dateFin", "Date de fin", "end_date", "date", "date_fin"),
    FieldSpec("typePret", "Type de prêt", "loan_type", "coded", "type_pret_code"),
    FieldSpec(
        "objetFinancement", "Objet du financement", "financing_purpose", "coded",
        "objet_financement_code",
    ),
    FieldSpec(
        "coutAssuranceMensuel", "Coût mensuel assurance", "monthly_insurance_cost", "number",
        "cout_mensuel",
    ),
    FieldSpec(
        "capitalRestantDu", "Capital restant dû", "remaining_principal", "number",
        "capital_restant_du",
    ),
    FieldSpec(
        "dureeRestanteMois", "Durée restante (mois)", "remaining_duration_months", "number",
        "duree_restante_mois",
    ),
)

_CALCULATED = {"remaining_principal", "remaining_duration_months"}


def store_column(category: Category, spec: FieldSpec) -> str:
    """Client store column for a tracked field."""
    if category == "pret":
        return spec.column
    if category == "conjoint":
        return f"conjoint_{spec.column}"
    # The principal's professional category column has no prefix.
    if spec.column == "categorie_professionnelle":
        return spec.column
    return f"client_{spec.column}"


def field_specs(category: Category) -> Tuple[FieldSpec, ...]:
    return LOAN_FIELDS if category == "pret" else BORROWER_FIELDS


def extracted_value(record: ConsolidatedRecord, category: Category, spec: FieldSpec) -> Any:
    """Store-ready extracted value, or None when absent or unresolved.

    Coded fields yield their integer code, civility its canonical name.
    """
    if category == "pret":
        if spec.attribute in _CALCULATED:
            return getattr(record.calculated, spec.attribute)
        source: Any = record.loan
    elif category == "conjoint":
        source = record.co_borrower
    else:
        source = record.principal

    if source is None:
        return None
    value = getattr(source, spec.attribute)
    if isinstance(value, CodeResolution):
        if not value.is_resolved:
            return None
        return value.name if spec.kind == "civility" else value.code
    if isinstance(value, str) and not value.strip():
        return None
    return value


def format_value(value: Any, field: str | None = None) -> str:
    """Render a value for reviewers."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return "-"
    if isinstance(value, CodeResolution):
        return str(value)
    if isinstance(value, bool):
        if field == "fumeur":
            return "Fumeur" if value else "Non-fumeur"
        return "Oui" if value else "Non"
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, float):
        return f"{value:.2f}" if not value.is_integer() else str(int(value))
    return str(value)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class DiffEngine:
    """Compare extracted records with current client data."""

    def __init__(
        self,
        code_mapper: CodeMapper | None = None,
        config: ComparisonConfig | None = None,
    ) -> None:
        self.code_mapper = code_mapper or CodeMapper()
        self.config = config or ComparisonConfig()

    def compare(
        self,
        extracted: ConsolidatedRecord,
        current: CurrentClientData | Mapping[str, Any],
    ) -> DiffReport:
        """Build a :class:`DiffReport` listing new and differing fields.

        Args:
            extracted: Consolidated record for the dossier.
            current: Client store snapshot (model or raw row).

        Raises:
            ValueError: If either input is not a valid record.
        """
        if not isinstance(extracted, ConsolidatedRecord):
            raise ValueError(
                f"Expected a ConsolidatedRecord, got {type(extracted).__name__}"
            )
        if isinstance(current, Mapping):
            current = CurrentClientData.model_validate(dict(current))
        if not isinstance(current, CurrentClientData):
            raise ValueError(f"Expected CurrentClientData, got {type(current).__name__}")

        detected_type = extracted.detected_type
        current_type = current.dossier_type
        has_type_mismatch = detected_type != current_type
        store = current.model_dump()

        principal_diffs = self._compare_category(extracted, store, "principal")
        conjoint_diffs: List[FieldDifference] = []
        if detected_type == "couple":
            conjoint_store = store
            if current_type == "seul":
                # A single-borrower dossier has no co-borrower on file.
                conjoint_store = {}
            conjoint_diffs = self._compare_category(extracted, conjoint_store, "conjoint")
        loan_diffs: List[FieldDifference] = []
        if self.config.compare_loan:
            loan_diffs = self._compare_category(extracted, store, "pret")

        confidence = extracted.metadata.confidence
        confidence -= self.config.unresolved_penalty * len(extracted.unresolved_fields)
        if has_type_mismatch:
            confidence -= self.config.type_mismatch_penalty
        confidence = max(0.0, min(1.0, confidence))

        total = len(principal_diffs) + len(conjoint_diffs) + len(loan_diffs)
        report = DiffReport(
            has_client_differences=bool(principal_diffs or conjoint_diffs or loan_diffs),
            has_type_mismatch=has_type_mismatch,
            current_type=current_type,
            detected_type=detected_type,
            principal_diffs=principal_diffs,
            conjoint_diffs=conjoint_diffs,
            loan_diffs=loan_diffs,
            missing_fields=list(extracted.metadata.missing_fields),
            unresolved_fields=list(extracted.unresolved_fields),
            total_differences=total,
            confidence=confidence,
        )
        logger.info(report.summary())
        return report

    def _compare_category(
        self, record: ConsolidatedRecord, store: Dict[str, Any], category: Category
    ) -> List[FieldDifference]:
        diffs: List[FieldDifference] = []
        for spec in field_specs(category):
            new_value = extracted_value(record, category, spec)
            if _is_empty(new_value):
                continue
            old_value = store.get(store_column(category, spec))

            is_new = _is_empty(old_value)
            is_different = not is_new and not self.equivalent(spec.kind, old_value, new_value)
            if not (is_new or is_different):
                continue
            diffs.append(
                FieldDifference(
                    field=spec.field,
                    label=spec.label,
                    category=category,
                    current_value=old_value,
                    extracted_value=new_value,
                    is_different=is_different,
                    is_new=is_new,
                )
            )
        return diffs

    def equivalent(self, kind: str, current: Any, extracted: Any) -> bool:
        """Whether two present values are equal under the field's comparator."""
        if kind == "name":
            return normalize(str(current)) == normalize(str(extracted))
        if kind == "identifier":
            return _compact(current) == _compact(extracted)
        if kind == "number":
            try:
                return abs(float(current) - float(extracted)) < self.config.numeric_tolerance
            except (TypeError, ValueError):
                return False
        if kind == "date":
            return _as_date(current) == _as_date(extracted)
        if kind == "bool":
            return bool(current) is bool(extracted)
        if kind == "coded":
            try:
                return int(current) == int(extracted)
            except (TypeError, ValueError):
                return False
        if kind == "civility":
            return self._canonical_civility(current) == self._canonical_civility(extracted)
        raise ValueError(f"Unknown field kind '{kind}'")

    def _canonical_civility(self, value: Any) -> str:
        resolution = self.code_mapper.resolve(CIVILITY, value)
        if resolution is not None and resolution.is_resolved and resolution.name:
            return resolution.name
        return normalize(str(value))


def _compact(value: Any) -> str:
    return "".join(str(value).split()).lower()


def _as_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    return value
