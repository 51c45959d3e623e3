"""
Tree edit distance between ordered labeled trees.

The distance is the minimum total cost of node deletions, insertions and
renames transforming one tree into another, with children kept in order.
It is computed exactly by APTED, which picks an optimal path decomposition
(left, right or heavy paths) per subtree pair, so whole files of thousands
of nodes are compared in roughly quadratic time regardless of their shape.

Costs come from a :class:`CostModel`; :class:`CostModelConfig` adapts it to
the ``apted`` configuration interface.
"""
import logging

from apted import APTED, Config

from .costs import CostModel
from .errors import ComparisonTooLargeError, TreeTooDeepError
from .tree import AstNode, iter_preorder

logger = logging.getLogger(__name__)

# apted indexes trees recursively; deeper trees are refused up front
MAX_TREE_HEIGHT = 200


class CostModelConfig(Config):
    """APTED configuration backed by a :class:`CostModel`."""

    def __init__(self, cost_model: CostModel):
        self.cost_model = cost_model

    def delete(self, node: AstNode) -> float:
        return self.cost_model.delete(node)

    def insert(self, node: AstNode) -> float:
        return self.cost_model.insert(node)

    def rename(self, node1: AstNode, node2: AstNode) -> float:
        return self.cost_model.rename(node1, node2)

    def children(self, node: AstNode) -> list[AstNode]:
        return list(node.children)


def tree_edit_distance(
    source: AstNode | None,
    target: AstNode | None,
    cost_model: CostModel,
    max_subproblems: int | None = None,
) -> float:
    """
    Compute the ordered tree edit distance between two trees.

    Args:
        source: Root of the first tree, or None for an empty tree
        target: Root of the second tree, or None for an empty tree
        cost_model: Costs of delete/insert/rename operations
        max_subproblems: Upper bound on the node pair count ``|source| * |target|``
            (None = unbounded)

    Returns:
        Minimum total edit cost

    Raises:
        ComparisonTooLargeError: if the node pair count exceeds max_subproblems
        TreeTooDeepError: if either tree is deeper than MAX_TREE_HEIGHT

    Examples:
        >>> from labguard.costs import UnitCostModel
        >>> from labguard.tree import node
        >>> tree_edit_distance(node("a", node("b"), node("c")), node("a", node("c"), node("b")), UnitCostModel())
        2.0
    """
    if source is None and target is None:
        return 0.0
    if source is None:
        return float(sum(cost_model.insert(item) for item in iter_preorder(target)))
    if target is None:
        return float(sum(cost_model.delete(item) for item in iter_preorder(source)))

    subproblems = source.size * target.size
    if max_subproblems is not None and subproblems > max_subproblems:
        raise ComparisonTooLargeError(subproblems, max_subproblems)

    height = max(source.height, target.height)
    if height > MAX_TREE_HEIGHT:
        raise TreeTooDeepError(height, MAX_TREE_HEIGHT)

    logger.debug(f"Tree edit distance {source.size}x{target.size} nodes")
    return float(APTED(source, target, CostModelConfig(cost_model)).compute_edit_distance())


class TreeEditDistance:
    """Tree edit distance bound to one cost model and subproblem budget."""

    def __init__(self, cost_model: CostModel, max_subproblems: int | None = None):
        self.cost_model = cost_model
        self.max_subproblems = max_subproblems

    def distance(self, source: AstNode | None, target: AstNode | None) -> float:
        return tree_edit_distance(source, target, self.cost_model, self.max_subproblems)
