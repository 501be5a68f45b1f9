# src/knownscan/contracts/enums.py
"""Classifications and node kinds used across subsystem boundaries."""

from enum import StrEnum


class NodeKind(StrEnum):
    """Kind of value-producing node in a dependency graph.

    Values:
        RESOURCE_ATTRIBUTE: Attribute of a managed resource
        DATA_ATTRIBUTE: Attribute of a data source lookup
        LOCAL_EXPRESSION: Named local value
        MODULE_OUTPUT: Output exported by a module
        EXTERNAL_INPUT: Caller-supplied input with a declared classification
        KEYED_ITERATION_CONSUMER: Construct that needs a concrete key set
            (for_each and friends) wrapping another node
    """

    RESOURCE_ATTRIBUTE = "resource_attribute"
    DATA_ATTRIBUTE = "data_attribute"
    LOCAL_EXPRESSION = "local_expression"
    MODULE_OUTPUT = "module_output"
    EXTERNAL_INPUT = "external_input"
    KEYED_ITERATION_CONSUMER = "keyed_iteration_consumer"


class Classification(StrEnum):
    """Classification of a node's value within one analysis run.

    PENDING is transient: it is only observable while the propagation
    engine is resolving a node. Terminal values never change within a run.
    """

    KNOWN = "known"
    UNKNOWN = "unknown"
    PENDING = "pending"
    CYCLIC = "cyclic"

    @property
    def is_terminal(self) -> bool:
        return self is not Classification.PENDING


# Join order for combining operand classifications. Cyclic absorbs
# everything: a value that depends on a cycle cannot be computed at all.
_JOIN_RANK: dict[Classification, int] = {
    Classification.KNOWN: 0,
    Classification.UNKNOWN: 1,
    Classification.CYCLIC: 2,
}

# Kinds that may carry a declared classification instead of (or in
# addition to) an expression.
DECLARABLE_KINDS: frozenset[NodeKind] = frozenset(
    {
        NodeKind.EXTERNAL_INPUT,
        NodeKind.RESOURCE_ATTRIBUTE,
        NodeKind.DATA_ATTRIBUTE,
    }
)


def join(*classifications: Classification) -> Classification:
    """Least upper bound of terminal classifications.

    An empty join is KNOWN (nothing contributes unknown-ness).

    Raises:
        ValueError: If PENDING is passed; callers must resolve first.
    """
    result = Classification.KNOWN
    for classification in classifications:
        if classification is Classification.PENDING:
            raise ValueError("cannot join a PENDING classification")
        if _JOIN_RANK[classification] > _JOIN_RANK[result]:
            result = classification
    return result
