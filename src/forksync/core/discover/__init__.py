"""Discovery: local scanning, URL normalization and reconciliation."""

from .models import ApplyReport, DuplicateLocal, LocalRepo, MatchedRepo, ReconciliationResult
from .reconcile import apply_reconciliation, reconcile
from .scanner import LocalScanner
from .urls import key_from_url, normalize_remote_url

__all__ = [
    "ApplyReport",
    "DuplicateLocal",
    "LocalRepo",
    "LocalScanner",
    "MatchedRepo",
    "ReconciliationResult",
    "apply_reconciliation",
    "key_from_url",
    "normalize_remote_url",
    "reconcile",
]
