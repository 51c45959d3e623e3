"""
Similarity detectors.

Every detector implements the same contract, ``detect(a, b) -> float`` in
[0, 1], over anything exposing ``tree`` and ``source`` (whole submissions and
extracted methods alike). The orchestrator is written against the
:class:`Detector` interface only.
"""
import math
import re
from abc import ABC, abstractmethod
from collections import Counter
from difflib import SequenceMatcher
from typing import Protocol

from .costs import CostModel, WeightedCostModel
from .distance import TreeEditDistance
from .tree import AstNode, tree_size


class Comparable(Protocol):
    """An entity that can be compared: a submission or a method."""
    name: str
    tree: AstNode | None
    source: str

    @property
    def fingerprint(self) -> str: ...


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def similarity_from_distance(distance: float, source_size: int, target_size: int) -> float:
    """
    Normalize an edit distance into a similarity score.

    ``1 - distance / max(size)``, clamped to [0, 1]. Two empty trees are
    identical (1.0); an empty tree shares nothing with a non-empty one (0.0).
    The raw value drops below 0 whenever the edit cost exceeds the larger
    tree's node count, which happens with base costs above 1; such pairs
    clamp to 0.

    Examples:
        >>> similarity_from_distance(0.0, 0, 0)
        1.0
        >>> similarity_from_distance(3.0, 0, 3)
        0.0
        >>> similarity_from_distance(1.0, 4, 5)
        0.8
    """
    largest = max(source_size, target_size)
    if largest == 0:
        return 1.0
    if source_size == 0 or target_size == 0:
        return 0.0
    return clamp(1.0 - distance / largest)


class Detector(ABC):
    """Interface for similarity detection strategies."""

    name: str = "detector"
    # detect(a, b) == detect(b, a); lets result caches use unordered keys
    symmetric: bool = True

    @abstractmethod
    def detect(self, source: Comparable, target: Comparable) -> float:
        """
        Compute the similarity of two entities.

        :param source: Entity of the lab under check
        :param target: Entity it is compared against
        :return: Similarity in [0, 1], 1.0 for identical entities
        """
        pass


class TreeEditDetector(Detector):
    """Structural similarity through ordered tree edit distance."""

    name = "tree"

    def __init__(self, cost_model: CostModel | None = None, max_subproblems: int | None = None):
        self.cost_model = cost_model or WeightedCostModel()
        self.engine = TreeEditDistance(self.cost_model, max_subproblems)

    def similarity(self, source: AstNode | None, target: AstNode | None) -> float:
        source_size, target_size = tree_size(source), tree_size(target)
        if source_size == 0 or target_size == 0:
            return similarity_from_distance(0.0, source_size, target_size)
        if source.digest == target.digest:
            return 1.0
        return similarity_from_distance(self.engine.distance(source, target), source_size, target_size)

    def detect(self, source: Comparable, target: Comparable) -> float:
        return self.similarity(source.tree, target.tree)


_TOKEN_SPLIT = re.compile(r"\W+")


def tokenize(code: str) -> list[str]:
    """Lowercased word tokens of source text."""
    return [token for token in _TOKEN_SPLIT.split(code.lower()) if token]


class TokenOverlapDetector(Detector):
    """Shared tokens (multiset intersection) over the larger token count."""

    name = "tokens"

    def detect(self, source: Comparable, target: Comparable) -> float:
        source_tokens = Counter(source.source.split())
        target_tokens = Counter(target.source.split())
        largest = max(sum(source_tokens.values()), sum(target_tokens.values()))
        if largest == 0:
            return 1.0
        common = sum((source_tokens & target_tokens).values())
        return common / largest


class CodeMetricsDetector(Detector):
    """Best of character-sequence ratio, token Jaccard and token cosine similarity."""

    name = "metrics"

    @staticmethod
    def sequence_ratio(first: str, second: str) -> float:
        """Best difflib ratio over both argument orders; a single ratio is order dependent."""
        if not first and not second:
            return 1.0
        return max(
            SequenceMatcher(None, first, second, autojunk=False).ratio(),
            SequenceMatcher(None, second, first, autojunk=False).ratio(),
        )

    @staticmethod
    def jaccard(first: str, second: str) -> float:
        first_set, second_set = set(tokenize(first)), set(tokenize(second))
        union = first_set | second_set
        if not union:
            return 0.0
        return len(first_set & second_set) / len(union)

    @staticmethod
    def cosine(first: str, second: str) -> float:
        first_counts, second_counts = Counter(tokenize(first)), Counter(tokenize(second))
        dot = sum(count * second_counts[token] for token, count in first_counts.items())
        first_norm = math.sqrt(sum(count * count for count in first_counts.values()))
        second_norm = math.sqrt(sum(count * count for count in second_counts.values()))
        if first_norm == 0.0 or second_norm == 0.0:
            return 0.0
        return dot / (first_norm * second_norm)

    def detect(self, source: Comparable, target: Comparable) -> float:
        return clamp(max(
            self.sequence_ratio(source.source, target.source),
            self.jaccard(source.source, target.source),
            self.cosine(source.source, target.source),
        ))


_WHITESPACE = re.compile(r"\s+")
_KEYWORDS = re.compile(
    r"\b(def|class|if|elif|else|while|for|return|try|except|with|lambda|yield|import)\b"
)
_CALLED_NAMES = re.compile(r"\b(\w+)\s*\(")


class PatternMatchingDetector(Detector):
    """
    Keyword and call-name pattern matching.

    The keywords and called names of the source entity are joined into one
    case-insensitive pattern. The score is the number of times that pattern
    matches the target, over the larger of the two entities' self-match
    counts. The pattern is built from the source side only, so the score is
    not symmetric.
    """

    name = "patterns"
    symmetric = False

    @staticmethod
    def build_pattern(code: str) -> re.Pattern | None:
        cleaned = _WHITESPACE.sub(" ", code).strip()
        items = {match.group(1) for match in _KEYWORDS.finditer(cleaned)}
        items.update(match.group(1) for match in _CALLED_NAMES.finditer(cleaned))
        if not items:
            return None
        alternatives = "|".join(re.escape(item) for item in sorted(items))
        return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)

    @staticmethod
    def count_matches(pattern: re.Pattern | None, code: str) -> int:
        if pattern is None:
            return 0
        return sum(1 for _ in pattern.finditer(code))

    def detect(self, source: Comparable, target: Comparable) -> float:
        source_pattern = self.build_pattern(source.source)
        target_pattern = self.build_pattern(target.source)
        largest = max(
            self.count_matches(source_pattern, source.source),
            self.count_matches(target_pattern, target.source),
        )
        if largest == 0:
            return 0.0
        return clamp(self.count_matches(source_pattern, target.source) / largest)


_ASSIGNMENT = re.compile(r"^([\w.]+)\s*=(?!=)\s*(.+)$")
_METHOD_CALL = re.compile(r"^([\w.]+)\.(\w+)\((.*)\)$")


def data_flow_edges(code: str) -> set[tuple[str, str]]:
    """
    Variable/operation pairs of simple statement lines.

    Examples:
        >>> sorted(data_flow_edges("total = 0\\nself.items.append(item)\\nif total == 1:"))
        [('self.items', 'method call: append'), ('total', 'assignment: 0')]
    """
    edges = set()
    for line in code.splitlines():
        line = line.strip()
        assignment = _ASSIGNMENT.match(line)
        if assignment:
            edges.add((assignment.group(1), f"assignment: {assignment.group(2).strip()}"))
            continue
        call = _METHOD_CALL.match(line)
        if call:
            edges.add((call.group(1), f"method call: {call.group(2)}"))
    return edges


class DataFlowDetector(Detector):
    """Jaccard similarity of variable assignments and method calls."""

    name = "dataflow"

    def detect(self, source: Comparable, target: Comparable) -> float:
        source_edges = data_flow_edges(source.source)
        target_edges = data_flow_edges(target.source)
        union = source_edges | target_edges
        if not union:
            return 0.0
        return len(source_edges & target_edges) / len(union)


class EnsembleDetector(Detector):
    """Weighted mean of several detectors."""

    name = "ensemble"

    def __init__(self, members: list[tuple[Detector, float]]):
        if not members:
            raise ValueError("Ensemble needs at least one detector")
        if any(weight < 0 for _, weight in members) or sum(weight for _, weight in members) <= 0:
            raise ValueError("Ensemble weights must be non-negative with a positive sum")
        self.members = members
        self.symmetric = all(detector.symmetric for detector, _ in members)

    def detect(self, source: Comparable, target: Comparable) -> float:
        total_weight = sum(weight for _, weight in self.members)
        score = sum(detector.detect(source, target) * weight for detector, weight in self.members)
        return clamp(score / total_weight)


DETECTOR_NAMES = ("tree", "tokens", "metrics", "patterns", "dataflow", "ensemble")


def build_detector(
    name: str,
    cost_model: CostModel | None = None,
    max_subproblems: int | None = None,
) -> Detector:
    """
    Create a detector by name.

    Args:
        name: One of DETECTOR_NAMES
        cost_model: Cost model for tree edit distance (default: WeightedCostModel)
        max_subproblems: Budget for a single tree comparison

    Returns:
        Detector instance

    Raises:
        ValueError: if name is unknown
    """
    if name == "tree":
        return TreeEditDetector(cost_model, max_subproblems)
    if name == "tokens":
        return TokenOverlapDetector()
    if name == "metrics":
        return CodeMetricsDetector()
    if name == "patterns":
        return PatternMatchingDetector()
    if name == "dataflow":
        return DataFlowDetector()
    if name == "ensemble":
        return EnsembleDetector([
            (TreeEditDetector(cost_model, max_subproblems), 0.6),
            (CodeMetricsDetector(), 0.2),
            (TokenOverlapDetector(), 0.2),
        ])
    raise ValueError(f"Unknown detector {name!r}, expected one of {', '.join(DETECTOR_NAMES)}")
