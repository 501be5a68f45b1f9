# tests/core/test_expressions.py
"""Tests for expression trees and their walkers."""

import pytest

from knownscan.core.expressions import (
    Conditional,
    Flatten,
    Interpolation,
    Literal,
    Lookup,
    Merge,
    Reference,
    children,
    depth,
    dynamic_lookups,
    referenced_ids,
    render,
    value_nesting,
    walk,
)


def _nested_flatten(levels: int) -> Flatten | Literal:
    expr: Flatten | Literal = Literal([])
    for _ in range(levels):
        expr = Flatten(expr)
    return expr


class TestExpressionNodes:
    """Expression dataclasses are immutable values."""

    def test_expressions_are_frozen(self) -> None:
        ref = Reference("x")
        with pytest.raises(AttributeError):
            ref.target = "y"  # type: ignore[misc]

    def test_equal_trees_compare_equal(self) -> None:
        assert Merge((Literal({}), Reference("x"))) == Merge((Literal({}), Reference("x")))

    def test_lookup_with_literal_key_is_static(self) -> None:
        assert Lookup(Reference("m"), Literal("a"), Literal(None)).has_dynamic_key is False

    def test_lookup_with_computed_key_is_dynamic(self) -> None:
        assert Lookup(Reference("m"), Reference("k"), Literal(None)).has_dynamic_key is True


class TestWalkers:
    """children, walk, referenced_ids, depth and dynamic_lookups."""

    def test_children_of_leaves(self) -> None:
        assert children(Literal(1)) == ()
        assert children(Reference("x")) == ()

    def test_children_of_lookup_in_order(self) -> None:
        lookup = Lookup(Reference("m"), Reference("k"), Literal("d"))
        assert children(lookup) == (Reference("m"), Reference("k"), Literal("d"))

    def test_children_rejects_non_expression(self) -> None:
        with pytest.raises(TypeError, match="Not an expression"):
            children("x")  # type: ignore[arg-type]

    def test_walk_is_preorder_left_to_right(self) -> None:
        expr = Merge((Reference("a"), Flatten(Reference("b")), Reference("c")))
        assert list(walk(expr)) == [expr, Reference("a"), Flatten(Reference("b")), Reference("b"), Reference("c")]

    def test_referenced_ids_first_seen_order_without_duplicates(self) -> None:
        expr = Conditional(Reference("flag"), Merge((Reference("b"), Reference("flag"))), Reference("a"))
        assert referenced_ids(expr) == ("flag", "b", "a")

    def test_depth_of_leaf_is_one(self) -> None:
        assert depth(Literal(None)) == 1

    def test_depth_counts_longest_branch(self) -> None:
        expr = Merge((Literal(1), Flatten(Flatten(Reference("x")))))
        assert depth(expr) == 4

    def test_deep_tree_does_not_overflow_stack(self) -> None:
        """Walkers are iterative, so very deep trees are measured, not crashed on."""
        expr = _nested_flatten(5000)
        assert depth(expr) == 5002
        assert referenced_ids(expr) == ()

    def test_depth_counts_literal_nesting(self) -> None:
        assert depth(Literal({"a": [1]})) == 3
        assert depth(Flatten(Literal([]))) == 3
        assert depth(Merge((Literal({}), Reference("x")))) == 3

    def test_value_nesting(self) -> None:
        assert value_nesting("scalar") == 0
        assert value_nesting([]) == 1
        assert value_nesting({"a": [{"b": 1}], "c": 2}) == 3

    def test_value_nesting_stops_on_self_containing_value(self) -> None:
        loop: list[object] = []
        loop.append(loop)
        assert value_nesting(loop, stop_after=10) == 11

    def test_dynamic_lookups_skips_literal_keys(self) -> None:
        static = Lookup(Reference("m"), Literal("a"), Literal(None))
        dynamic = Lookup(Reference("n"), Reference("k"), Literal(None))
        assert dynamic_lookups(Merge((static, dynamic))) == [dynamic]


class TestRender:
    """Human-readable rendering for diagnostics."""

    def test_render_merge(self) -> None:
        assert render(Merge((Literal({}), Reference("x")))) == "merge({}, x)"

    def test_render_conditional(self) -> None:
        assert render(Conditional(Reference("c"), Literal("a"), Literal("b"))) == "c ? 'a' : 'b'"

    def test_render_lookup(self) -> None:
        assert render(Lookup(Reference("m"), Reference("k"), Literal(None))) == "lookup(m, k, None)"

    def test_render_interpolation_keeps_string_parts_raw(self) -> None:
        assert render(Interpolation((Literal("logs-"), Reference("env")))) == '"logs-${env}"'
