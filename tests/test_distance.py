"""
Unit tests for labguard/distance.py

Checks the APTED-backed engine against known distances and against a
brute-force forest recursion on random small trees.
"""
import random
from functools import lru_cache

import pytest

from labguard.costs import CostModel, UnitCostModel, WeightedCostModel
from labguard.distance import MAX_TREE_HEIGHT, CostModelConfig, TreeEditDistance, tree_edit_distance
from labguard.errors import ComparisonTooLargeError, TreeTooDeepError
from labguard.tree import AstNode, iter_preorder, node


def reference_distance(source: AstNode, target: AstNode, cost_model: CostModel) -> float:
    """Textbook recursion over forests, removing rightmost roots."""

    @lru_cache(maxsize=None)
    def forest(first: tuple, second: tuple) -> float:
        if not first and not second:
            return 0.0
        if not first:
            return sum(cost_model.insert(item) for tree in second for item in iter_preorder(tree))
        if not second:
            return sum(cost_model.delete(item) for tree in first for item in iter_preorder(tree))

        v, w = first[-1], second[-1]
        return min(
            forest(first[:-1] + v.children, second) + cost_model.delete(v),
            forest(first, second[:-1] + w.children) + cost_model.insert(w),
            forest(v.children, w.children) + forest(first[:-1], second[:-1]) + cost_model.rename(v, w),
        )

    return forest((source,), (target,))


def random_tree(rng: random.Random, size: int, labels: list[str]) -> AstNode:
    children = []
    remaining = size - 1
    while remaining:
        child_size = rng.randint(1, remaining)
        children.append(random_tree(rng, child_size, labels))
        remaining -= child_size
    return AstNode(rng.choice(labels), tuple(children))


def comb(depth: int, label: str = "a") -> AstNode:
    """Right-leaning comb: every inner node has a leaf then the rest."""
    tree = node(label)
    for _ in range(depth):
        tree = node(label, node("leaf"), tree)
    return tree


class TestKnownDistances:
    """Tests for hand-computed distances under unit costs."""

    def test_identical_trees(self):
        tree = node("f", node("d", node("a"), node("c", node("b"))), node("e"))
        assert tree_edit_distance(tree, tree, UnitCostModel()) == 0.0

    def test_identical_weighted(self):
        tree = node("ClassDef", node("FunctionDef", node("arguments"), node("Return")))
        assert tree_edit_distance(tree, tree, WeightedCostModel()) == 0.0

    def test_swapped_children(self):
        """Order matters: swapping two leaves needs two renames."""
        first = node("a", node("b"), node("c"))
        second = node("a", node("c"), node("b"))
        assert tree_edit_distance(first, second, UnitCostModel()) == 2.0

    def test_single_rename(self):
        assert tree_edit_distance(node("a", node("b")), node("a", node("x")), UnitCostModel()) == 1.0

    def test_single_insert(self):
        assert tree_edit_distance(node("a", node("b")), node("a", node("b"), node("c")), UnitCostModel()) == 1.0

    def test_classic_example(self):
        """Delete 'c' under 'd' and insert 'c' above 'd'."""
        first = node("f", node("d", node("a"), node("c", node("b"))), node("e"))
        second = node("f", node("c", node("d", node("a"), node("b"))), node("e"))
        assert tree_edit_distance(first, second, UnitCostModel()) == 2.0

    def test_delete_inner_node_keeps_children(self):
        """Deleting an inner node splices its children into the parent."""
        first = node("a", node("b", node("c"), node("d")))
        second = node("a", node("c"), node("d"))
        assert tree_edit_distance(first, second, UnitCostModel()) == 1.0


class TestEmptyTrees:
    """Tests for comparisons involving an absent tree."""

    def test_both_empty(self):
        assert tree_edit_distance(None, None, UnitCostModel()) == 0.0

    def test_empty_source_costs_inserts(self):
        tree = node("ClassDef", node("FunctionDef"), node("Name"))
        model = WeightedCostModel()
        assert tree_edit_distance(None, tree, model) == pytest.approx(4.0 + 3.5 + 1.0)

    def test_empty_target_costs_deletes(self):
        tree = node("a", node("b"), node("c", node("d")))
        assert tree_edit_distance(tree, None, UnitCostModel()) == 4.0


class TestAgainstReference:
    """The engine agrees with brute force on random small trees."""

    @pytest.mark.parametrize("seed", range(8))
    def test_unit_costs(self, seed):
        rng = random.Random(seed)
        model = UnitCostModel()
        for _ in range(15):
            first = random_tree(rng, rng.randint(1, 7), ["a", "b", "c"])
            second = random_tree(rng, rng.randint(1, 7), ["a", "b", "c"])
            assert tree_edit_distance(first, second, model) == pytest.approx(
                reference_distance(first, second, model)
            )

    @pytest.mark.parametrize("seed", range(4))
    def test_weighted_costs(self, seed):
        rng = random.Random(100 + seed)
        model = WeightedCostModel()
        labels = ["If", "For", "Call", "Name", "Foo", "Food", "Return"]
        for _ in range(10):
            first = random_tree(rng, rng.randint(1, 6), labels)
            second = random_tree(rng, rng.randint(1, 6), labels)
            assert tree_edit_distance(first, second, model) == pytest.approx(
                reference_distance(first, second, model)
            )


class TestProperties:
    """Tests for symmetry, determinism and scale."""

    def test_symmetric(self):
        rng = random.Random(7)
        model = WeightedCostModel()
        labels = ["ClassDef", "FunctionDef", "If", "Name", "Call"]
        for _ in range(20):
            first = random_tree(rng, rng.randint(1, 10), labels)
            second = random_tree(rng, rng.randint(1, 10), labels)
            assert tree_edit_distance(first, second, model) == pytest.approx(
                tree_edit_distance(second, first, model)
            )

    def test_deterministic(self):
        first = comb(6)
        second = comb(4, label="b")
        engine = TreeEditDistance(WeightedCostModel())
        assert engine.distance(first, second) == engine.distance(first, second)

    def test_chain_within_height_limit(self):
        """A chain as deep as the limit still gets an exact distance."""
        first = node("leaf")
        second = node("other")
        for _ in range(MAX_TREE_HEIGHT - 1):
            first = node("w", first)
            second = node("w", second)
        assert first.height == MAX_TREE_HEIGHT
        assert tree_edit_distance(first, second, UnitCostModel()) == 1.0

    def test_too_deep_tree_refused(self):
        """A chain deeper than the limit raises instead of recursing."""
        first = node("leaf")
        for _ in range(1200):
            first = node("w", first)
        with pytest.raises(TreeTooDeepError) as exc_info:
            tree_edit_distance(first, node("leaf"), UnitCostModel())
        assert exc_info.value.height == 1201
        assert exc_info.value.limit == MAX_TREE_HEIGHT


class TestCostModelConfig:
    """Tests for the cost model adapter."""

    def test_delegates_to_cost_model(self):
        config = CostModelConfig(WeightedCostModel())
        assert config.delete(node("ClassDef")) == 4.0
        assert config.insert(node("FunctionDef")) == 3.5
        assert config.rename(node("If"), node("If")) == 0.0

    def test_children_in_order(self):
        tree = node("a", node("b"), node("c"))
        assert [child.label for child in CostModelConfig(UnitCostModel()).children(tree)] == ["b", "c"]


class TestScale:
    """Tests for large trees and the node pair budget."""

    def test_comb_distance_matches_reference(self):
        model = UnitCostModel()
        first = comb(5)
        second = comb(4)
        assert tree_edit_distance(first, second, model) == pytest.approx(
            reference_distance(first, second, model)
        )

    def test_wide_tree_over_thousand_nodes(self):
        """A file-sized tree with one changed statement is compared fully."""
        body = [node("FunctionDef", node("arguments", node("arg")), node("Return", node("Name"))) for _ in range(170)]
        first = node("Module", *body)
        second = node("Module", *body[:-1], node("FunctionDef", node("arguments", node("arg")), node("Pass")))
        assert first.size > 1000
        engine = TreeEditDistance(WeightedCostModel(), max_subproblems=25_000_000)
        assert engine.distance(first, second) == pytest.approx(2.5 + 1.8 + 1.0)

    def test_budget_counts_node_pairs(self):
        first = comb(20)
        second = comb(20, label="b")
        with pytest.raises(ComparisonTooLargeError) as exc_info:
            tree_edit_distance(first, second, UnitCostModel(), max_subproblems=10)
        assert exc_info.value.limit == 10
        assert exc_info.value.subproblems == first.size * second.size

    def test_budget_respected(self):
        first = comb(3)
        engine = TreeEditDistance(UnitCostModel(), max_subproblems=first.size * first.size)
        assert engine.distance(first, first) == 0.0
