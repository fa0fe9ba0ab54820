"""Pipeline orchestrators for end-to-end workflows."""

from src.pipeline.reconciliation_pipeline import ReconciliationPipeline, ReconciliationResult

__all__ = ["ReconciliationPipeline", "ReconciliationResult"]
