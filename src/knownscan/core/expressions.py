# src/knownscan/core/expressions.py
"""Expression trees attached to graph nodes.

An expression is an immutable tree owned by exactly one node. Trees are
acyclic by construction (frozen dataclasses cannot be tied into loops
after creation); cycles can only appear between nodes, via Reference.

Walkers in this module are iterative so that a pathologically deep tree
is rejected by a depth check instead of blowing the interpreter stack.
The evaluator, renderer and fingerprinting recurse, so the depth limit can
be lowered but never raised above MAX_EXPRESSION_DEPTH.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias

# Trees deeper than this are rejected before evaluation
MAX_EXPRESSION_DEPTH = 256
DEFAULT_MAX_EXPRESSION_DEPTH = MAX_EXPRESSION_DEPTH


@dataclass(frozen=True, slots=True)
class Literal:
    """A constant value. Always KNOWN."""

    value: Any = None


@dataclass(frozen=True, slots=True)
class Reference:
    """The value of another node."""

    target: str


@dataclass(frozen=True, slots=True)
class Merge:
    """Shallow map merge; later operands override earlier keys."""

    operands: tuple[Expression, ...]


@dataclass(frozen=True, slots=True)
class Flatten:
    operand: Expression


@dataclass(frozen=True, slots=True)
class Lookup:
    """Map lookup with a fallback when the key is absent."""

    map: Expression
    key: Expression
    default: Expression

    @property
    def has_dynamic_key(self) -> bool:
        """Whether the key is computed rather than written inline."""
        return not isinstance(self.key, Literal)


@dataclass(frozen=True, slots=True)
class Conditional:
    condition: Expression
    then_branch: Expression
    else_branch: Expression


@dataclass(frozen=True, slots=True)
class Interpolation:
    """String template built from its operands in order."""

    operands: tuple[Expression, ...]


Expression: TypeAlias = Literal | Reference | Merge | Flatten | Lookup | Conditional | Interpolation


def children(expr: Expression) -> tuple[Expression, ...]:
    """Direct operands of an expression, in evaluation order."""
    match expr:
        case Literal() | Reference():
            return ()
        case Merge(operands=operands) | Interpolation(operands=operands):
            return operands
        case Flatten(operand=operand):
            return (operand,)
        case Lookup(map=map_expr, key=key, default=default):
            return (map_expr, key, default)
        case Conditional(condition=condition, then_branch=then_branch, else_branch=else_branch):
            return (condition, then_branch, else_branch)
    raise TypeError(f"Not an expression: {expr!r}")


def walk(expr: Expression) -> Iterator[Expression]:
    """Yield every subexpression in pre-order, starting with expr itself."""
    stack: list[Expression] = [expr]
    while stack:
        current = stack.pop()
        yield current
        # Reverse so operands come out left to right
        stack.extend(reversed(children(current)))


def referenced_ids(expr: Expression) -> tuple[str, ...]:
    """Node ids referenced anywhere in the tree, in first-seen order."""
    seen: dict[str, None] = {}
    for sub in walk(expr):
        if isinstance(sub, Reference):
            seen.setdefault(sub.target, None)
    return tuple(seen)


def value_nesting(value: Any, *, stop_after: int | None = None) -> int:
    """Deepest chain of nested maps and lists inside a plain value.

    Scalars have nesting 0 and an empty list has nesting 1. With stop_after
    the walk ends as soon as the nesting exceeds it, which also bounds the
    walk over self-containing values.
    """
    deepest = 0
    stack: list[tuple[Any, int]] = [(value, 0)]
    while stack:
        current, level = stack.pop()
        if isinstance(current, Mapping):
            items: Any = current.values()
        elif isinstance(current, list | tuple | set | frozenset):
            items = current
        else:
            continue
        deepest = max(deepest, level + 1)
        if stop_after is not None and deepest > stop_after:
            return deepest
        stack.extend((item, level + 1) for item in items)
    return deepest


def depth(expr: Expression) -> int:
    """Height of the tree; a leaf has depth 1.

    Collections inside a Literal add their nesting, since rendering and
    fingerprinting a literal walk into it.
    """
    deepest = 0
    stack: list[tuple[Expression, int]] = [(expr, 1)]
    while stack:
        current, level = stack.pop()
        if isinstance(current, Literal):
            level += value_nesting(current.value)
        deepest = max(deepest, level)
        stack.extend((child, level + 1) for child in children(current))
    return deepest


def dynamic_lookups(expr: Expression) -> list[Lookup]:
    """Lookups whose key is computed, in pre-order."""
    return [sub for sub in walk(expr) if isinstance(sub, Lookup) and sub.has_dynamic_key]


def render(expr: Expression) -> str:
    """Compact human-readable form, used in diagnostics."""
    match expr:
        case Literal(value=value):
            return repr(value)
        case Reference(target=target):
            return target
        case Merge(operands=operands):
            return f"merge({', '.join(render(op) for op in operands)})"
        case Flatten(operand=operand):
            return f"flatten({render(operand)})"
        case Lookup(map=map_expr, key=key, default=default):
            return f"lookup({render(map_expr)}, {render(key)}, {render(default)})"
        case Conditional(condition=condition, then_branch=then_branch, else_branch=else_branch):
            return f"{render(condition)} ? {render(then_branch)} : {render(else_branch)}"
        case Interpolation(operands=operands):
            parts = (
                op.value if isinstance(op, Literal) and isinstance(op.value, str) else f"${{{render(op)}}}"
                for op in operands
            )
            return '"' + "".join(parts) + '"'
    raise TypeError(f"Not an expression: {expr!r}")
