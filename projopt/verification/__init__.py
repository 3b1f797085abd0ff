"""
Verification engine, rollback ledger and optimization history
"""

from projopt.verification.history import HistoryEntry, OptimizationHistory
from projopt.verification.ledger import OptimizationRun, OptimizationStep, RollbackLedger
from projopt.verification.verifier import (
    VerificationResult,
    Verifier,
    check_improvement,
    check_projection_equivalence,
    check_query_equivalence,
    create_verification_function,
)

__all__ = [
    "HistoryEntry",
    "OptimizationHistory",
    "OptimizationRun",
    "OptimizationStep",
    "RollbackLedger",
    "VerificationResult",
    "Verifier",
    "check_improvement",
    "check_projection_equivalence",
    "check_query_equivalence",
    "create_verification_function",
]
