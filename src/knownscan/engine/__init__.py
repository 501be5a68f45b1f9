# src/knownscan/engine/__init__.py
"""Analysis engine: evaluation, propagation, validation and reporting."""

from knownscan.engine.analyzer import AnalysisOutcome, Analyzer, NodeExplanation, analyze
from knownscan.engine.evaluator import CycleDetected, ExpressionDepthExceeded, ExpressionEvaluator
from knownscan.engine.propagation import (
    ClassificationStateError,
    ClassificationTable,
    PropagationEngine,
    PropagationResult,
)
from knownscan.engine.reporter import Report, Reporter, order_violations
from knownscan.engine.validator import ConsumerValidator

__all__ = [
    "AnalysisOutcome",
    "Analyzer",
    "ClassificationStateError",
    "ClassificationTable",
    "ConsumerValidator",
    "CycleDetected",
    "ExpressionDepthExceeded",
    "ExpressionEvaluator",
    "NodeExplanation",
    "PropagationEngine",
    "PropagationResult",
    "Report",
    "Reporter",
    "analyze",
    "order_violations",
]
