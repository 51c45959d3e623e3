"""
Edit operation cost models for tree edit distance.

Costs are pure functions of node labels and child counts, so every lookup
can be memoized per model instance. The caches are plain dicts populated
with compute-if-absent semantics: two workers racing on the same key compute
the same value and one of them wins, which is harmless.
"""
from abc import ABC, abstractmethod

import Levenshtein

from .tree import AstNode


# Base delete/insert cost per label. Coarse structural nodes cost more than
# fine-grained ones so distance reflects structure rather than cosmetics.
DEFAULT_LABEL_COSTS: dict[str, float] = {
    # Class
    "ClassDef": 4.0,
    # Method / function
    "FunctionDef": 3.5,
    "AsyncFunctionDef": 3.5,
    # Try / catch
    "Try": 3.2,
    "TryStar": 3.2,
    "ExceptHandler": 3.2,
    # Branching
    "If": 3.0,
    "Match": 3.0,
    "match_case": 3.0,
    "IfExp": 3.0,
    # Loops and lambdas
    "For": 2.8,
    "AsyncFor": 2.8,
    "While": 2.8,
    "Lambda": 2.8,
    "ListComp": 2.8,
    "SetComp": 2.8,
    "DictComp": 2.8,
    "GeneratorExp": 2.8,
    "comprehension": 2.8,
    # Fields, variables, return/raise
    "Assign": 2.5,
    "AnnAssign": 2.5,
    "AugAssign": 2.5,
    "Return": 2.5,
    "Raise": 2.5,
    "With": 2.5,
    "AsyncWith": 2.5,
    "Global": 2.5,
    "Nonlocal": 2.5,
    # Expressions
    "Expr": 2.0,
    "Call": 2.0,
    "BinOp": 2.0,
    "BoolOp": 2.0,
    "UnaryOp": 2.0,
    "Compare": 2.0,
    "Await": 2.0,
    "Yield": 2.0,
    "YieldFrom": 2.0,
    # Parameters, blocks, statements
    "arguments": 1.8,
    "arg": 1.8,
    "keyword": 1.8,
    "Pass": 1.8,
    "Break": 1.8,
    "Continue": 1.8,
    "Assert": 1.8,
    "Delete": 1.8,
    # Imports and decorations
    "Import": 1.5,
    "ImportFrom": 1.5,
    "alias": 1.5,
    # Operators
    "Add": 1.2, "Sub": 1.2, "Mult": 1.2, "MatMult": 1.2, "Div": 1.2,
    "Mod": 1.2, "Pow": 1.2, "LShift": 1.2, "RShift": 1.2, "BitOr": 1.2,
    "BitXor": 1.2, "BitAnd": 1.2, "FloorDiv": 1.2, "And": 1.2, "Or": 1.2,
    "Invert": 1.2, "Not": 1.2, "UAdd": 1.2, "USub": 1.2, "Eq": 1.2,
    "NotEq": 1.2, "Lt": 1.2, "LtE": 1.2, "Gt": 1.2, "GtE": 1.2, "Is": 1.2,
    "IsNot": 1.2, "In": 1.2, "NotIn": 1.2,
}

DEFAULT_BASE_COST = 1.0


class CostModel(ABC):
    """Costs of the three tree edit operations. All costs are non-negative."""

    @abstractmethod
    def delete(self, node: AstNode) -> float:
        pass

    @abstractmethod
    def insert(self, node: AstNode) -> float:
        pass

    @abstractmethod
    def rename(self, source: AstNode, target: AstNode) -> float:
        """Cost of relabeling ``source`` into ``target``; 0 for equal labels."""
        pass


class UnitCostModel(CostModel):
    """Every insertion and deletion costs 1, renaming a different label costs 1."""

    def delete(self, node: AstNode) -> float:
        return 1.0

    def insert(self, node: AstNode) -> float:
        return 1.0

    def rename(self, source: AstNode, target: AstNode) -> float:
        return 0.0 if source.label == target.label else 1.0


def label_similarity(first: str, second: str) -> float:
    """
    Textual similarity of two labels: 1 - levenshtein / longer length.

    Examples:
        >>> label_similarity("For", "For")
        1.0
        >>> label_similarity("For", "AsyncFor")
        0.375
        >>> label_similarity("", "")
        1.0
    """
    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(first, second) / longest


class WeightedCostModel(CostModel):
    """
    Structure-aware cost model.

    Delete and insert cost the label's base cost. Renaming two different
    labels costs:

    - the summed base cost alone, when it exceeds ``max_base_cost``;
    - ``similar_label_cost``, when the labels are textually similar above
      ``similar_label_threshold``;
    - otherwise the summed base cost, plus ``child_penalty`` per child of
      difference, plus ``(1 - label similarity) * similarity_weight``.

    Delete equals insert and rename is symmetric, so distances computed with
    this model are symmetric.
    """

    def __init__(
        self,
        label_costs: dict[str, float] | None = None,
        default_cost: float = DEFAULT_BASE_COST,
        max_base_cost: float = 5.0,
        similar_label_threshold: float = 0.7,
        similar_label_cost: float = 0.1,
        child_penalty: float = 0.05,
        similarity_weight: float = 1.5,
    ):
        self.label_costs = dict(DEFAULT_LABEL_COSTS)
        if label_costs:
            self.label_costs.update(label_costs)
        for label, cost in self.label_costs.items():
            if cost < 0:
                raise ValueError(f"Cost for label {label!r} must be non-negative, got {cost}")

        self.default_cost = default_cost
        self.max_base_cost = max_base_cost
        self.similar_label_threshold = similar_label_threshold
        self.similar_label_cost = similar_label_cost
        self.child_penalty = child_penalty
        self.similarity_weight = similarity_weight

        self.base_cost_cache: dict[str, float] = {}
        self.rename_similarity_cache: dict[tuple[str, str], float] = {}

    def base_cost(self, label: str) -> float:
        cost = self.base_cost_cache.get(label)
        if cost is None:
            cost = self.base_cost_cache.setdefault(
                label, self.label_costs.get(label, self.default_cost)
            )
        return cost

    def similarity(self, first: str, second: str) -> float:
        """Memoized label similarity; the key is order independent."""
        key = (first, second) if first <= second else (second, first)
        value = self.rename_similarity_cache.get(key)
        if value is None:
            value = self.rename_similarity_cache.setdefault(key, label_similarity(*key))
        return value

    def delete(self, node: AstNode) -> float:
        return self.base_cost(node.label)

    def insert(self, node: AstNode) -> float:
        return self.base_cost(node.label)

    def rename(self, source: AstNode, target: AstNode) -> float:
        if source.label == target.label:
            return 0.0

        base = self.base_cost(source.label) + self.base_cost(target.label)
        if base > self.max_base_cost:
            return base

        similarity = self.similarity(source.label, target.label)
        if similarity > self.similar_label_threshold:
            return self.similar_label_cost

        structure_penalty = abs(len(source.children) - len(target.children)) * self.child_penalty
        return base + structure_penalty + (1.0 - similarity) * self.similarity_weight
