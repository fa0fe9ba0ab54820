"""Extraction package exports."""

from src.extraction.consolidator import (
    CalculatedData,
    ConsolidatedBorrower,
    ConsolidatedLoan,
    ConsolidatedRecord,
    Consolidator,
    DerivationError,
    TargetRows,
    consolidate,
    derive_loan_metrics,
)
from src.extraction.models import (
    AmortizationRow,
    BorrowerInfo,
    DocumentType,
    ExtractionFragment,
    ExtractionMetadata,
    LoanTerms,
)

__all__ = [
    "AmortizationRow",
    "BorrowerInfo",
    "CalculatedData",
    "ConsolidatedBorrower",
    "ConsolidatedLoan",
    "ConsolidatedRecord",
    "Consolidator",
    "DerivationError",
    "DocumentType",
    "ExtractionFragment",
    "ExtractionMetadata",
    "LoanTerms",
    "TargetRows",
    "consolidate",
    "derive_loan_metrics",
]
