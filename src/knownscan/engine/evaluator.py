# src/knownscan/engine/evaluator.py
"""Abstract evaluation of expression trees to Known/Unknown.

The evaluator never computes real values. It classifies an expression from
the classifications already assigned to the nodes it references, bottom-up.
Alongside classification it resolves *static* values where the tree is made
of literals (and external inputs that carry a declared value), because two
rules need them:

- Conditional selects a branch only when its condition is a static boolean
- Lookup falls back to its default only when the key is statically absent

Merge taints the whole structure: once any operand is Unknown the merged map
is Unknown, even if the keys a consumer needs come from Known operands.
That is the plan-time behavior being detected and it is kept on purpose.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from knownscan.contracts.enums import Classification, join
from knownscan.core.expressions import (
    DEFAULT_MAX_EXPRESSION_DEPTH,
    MAX_EXPRESSION_DEPTH,
    Conditional,
    Expression,
    Flatten,
    Interpolation,
    Literal,
    Lookup,
    Merge,
    Reference,
    depth,
)
from knownscan.core.graph.models import UNSET


class CycleDetected(Exception):
    """Raised when a Reference resolves to a node still being resolved.

    The propagation engine recovers from this locally by classifying the
    nodes involved as CYCLIC; it never aborts the run.
    """

    def __init__(self, node_id: str, target: str) -> None:
        self.node_id = node_id
        self.target = target
        super().__init__(f"Node '{node_id}' references '{target}', which is still pending")


class ExpressionDepthExceeded(Exception):
    """Raised when an expression tree is deeper than the configured limit."""

    def __init__(self, node_id: str, actual: int, limit: int) -> None:
        self.node_id = node_id
        self.actual = actual
        self.limit = limit
        super().__init__(f"Expression of node '{node_id}' is {actual} levels deep (limit {limit})")


class ExpressionEvaluator:
    """Classify expression trees given resolved node classifications.

    Args:
        classifications: node id -> classification for every node that may
            be referenced (PENDING entries signal a cycle)
        static_values: node id -> statically known value, for nodes whose
            value can be computed without executing anything
        max_depth: Depth limit for a single tree, at most MAX_EXPRESSION_DEPTH

    Raises:
        ValueError: If max_depth is outside 1..MAX_EXPRESSION_DEPTH

    Example:
        evaluator = ExpressionEvaluator({"x": Classification.UNKNOWN}, {})
        evaluator.classify(Merge((Literal({}), Reference("x"))), node_id="useful")
        # Classification.UNKNOWN
    """

    def __init__(
        self,
        classifications: Mapping[str, Classification],
        static_values: Mapping[str, Any],
        *,
        max_depth: int = DEFAULT_MAX_EXPRESSION_DEPTH,
    ) -> None:
        if not 0 < max_depth <= MAX_EXPRESSION_DEPTH:
            raise ValueError(f"max_depth must be between 1 and {MAX_EXPRESSION_DEPTH}, got {max_depth}")
        self._classifications = classifications
        self._static_values = static_values
        self._max_depth = max_depth
        self._node_id = "<expression>"

    def classify(self, expr: Expression, *, node_id: str = "<expression>") -> Classification:
        """Classify one expression tree.

        Args:
            expr: Expression to classify
            node_id: Owning node, used in error messages

        Raises:
            CycleDetected: If a referenced node is PENDING
            ExpressionDepthExceeded: If the tree is deeper than max_depth
            KeyError: If a referenced node has no classification (the caller
                scheduled evaluation before resolving a dependency)
        """
        self.check_depth(expr, node_id=node_id)
        self._node_id = node_id
        return self._classify(expr)

    def check_depth(self, expr: Expression, *, node_id: str = "<expression>") -> None:
        """Raise ExpressionDepthExceeded if expr is deeper than max_depth."""
        actual = depth(expr)
        if actual > self._max_depth:
            raise ExpressionDepthExceeded(node_id, actual, self._max_depth)

    def _classify(self, expr: Expression) -> Classification:
        match expr:
            case Literal():
                return Classification.KNOWN
            case Reference(target=target):
                classification = self._classifications[target]
                if classification is Classification.PENDING:
                    raise CycleDetected(self._node_id, target)
                return classification
            case Merge(operands=operands) | Interpolation(operands=operands):
                return join(*(self._classify(op) for op in operands))
            case Flatten(operand=operand):
                return self._classify(operand)
            case Lookup():
                return self._classify_lookup(expr)
            case Conditional():
                return self._classify_conditional(expr)
        raise TypeError(f"Not an expression: {expr!r}")

    def _classify_lookup(self, expr: Lookup) -> Classification:
        collection = join(self._classify(expr.map), self._classify(expr.key))
        if collection is not Classification.KNOWN:
            return collection
        default = self._classify(expr.default)

        mapping = self.static_value(expr.map)
        key = self.static_value(expr.key)
        if isinstance(mapping, Mapping) and key is not UNSET:
            if _has_key(mapping, key):
                return Classification.KNOWN
            return default
        # Presence undecidable: the result is either the entry (known) or the default
        return join(Classification.KNOWN, default)

    def _classify_conditional(self, expr: Conditional) -> Classification:
        condition = self._classify(expr.condition)
        if condition is not Classification.KNOWN:
            return condition
        selected = self.static_value(expr.condition)
        if isinstance(selected, bool):
            return self._classify(expr.then_branch if selected else expr.else_branch)
        # A known condition whose value is not modeled could pick either branch
        # at plan time; without the value the result cannot be promised.
        return join(
            Classification.UNKNOWN,
            self._classify(expr.then_branch),
            self._classify(expr.else_branch),
        )

    def static_value(self, expr: Expression) -> Any:
        """Statically computed value of an expression, or UNSET.

        Only pure literal structure is computed: literals, references to
        nodes with a static value, merges of static maps, flattens of static
        lists, interpolations of static scalars, and lookups/conditionals
        whose inputs are all static.
        """
        match expr:
            case Literal(value=value):
                return value
            case Reference(target=target):
                return self._static_values.get(target, UNSET)
            case Merge(operands=operands):
                merged: dict[Any, Any] = {}
                for op in operands:
                    value = self.static_value(op)
                    if not isinstance(value, Mapping):
                        return UNSET
                    merged.update(value)
                return merged
            case Flatten(operand=operand):
                value = self.static_value(operand)
                return _flatten(value) if isinstance(value, list) else UNSET
            case Interpolation(operands=operands):
                parts = []
                for op in operands:
                    value = self.static_value(op)
                    if value is UNSET or isinstance(value, Mapping | list):
                        return UNSET
                    parts.append(_render_scalar(value))
                return "".join(parts)
            case Lookup(map=map_expr, key=key_expr, default=default):
                mapping = self.static_value(map_expr)
                key = self.static_value(key_expr)
                if not isinstance(mapping, Mapping) or key is UNSET:
                    return UNSET
                return mapping[key] if _has_key(mapping, key) else self.static_value(default)
            case Conditional(condition=condition, then_branch=then_branch, else_branch=else_branch):
                selected = self.static_value(condition)
                if not isinstance(selected, bool):
                    return UNSET
                return self.static_value(then_branch if selected else else_branch)
        raise TypeError(f"Not an expression: {expr!r}")


def _has_key(mapping: Mapping[Any, Any], key: Any) -> bool:
    try:
        return key in mapping
    except TypeError:
        # Unhashable key (a list or map used as a key) is never present
        return False


def _flatten(values: list[Any]) -> list[Any]:
    result: list[Any] = []
    stack = [iter(values)]
    while stack:
        for item in stack[-1]:
            if isinstance(item, list):
                stack.append(iter(item))
                break
            result.append(item)
        else:
            stack.pop()
    return result


def _render_scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
