"""
Records shared by the storage, orchestration and report layers.
"""
import hashlib
from dataclasses import dataclass, field
from functools import cached_property

from .tree import AstNode


def _fingerprint(tree: AstNode | None, source: str) -> str:
    hasher = hashlib.sha1((tree.digest if tree is not None else "-").encode("ascii"))
    hasher.update(b"\0")
    hasher.update(source.encode("utf-8"))
    return hasher.hexdigest()


@dataclass
class Method:
    """A function or method extracted from a submission."""
    name: str
    source: str  # Dedented source slice
    tree: AstNode | None  # Independent subtree, never shared with the parent

    @cached_property
    def fingerprint(self) -> str:
        """Content identity used for result memoization."""
        return _fingerprint(self.tree, self.source)


@dataclass
class Submission:
    """One parsed source file."""
    name: str  # Path relative to the lab's source directory
    tree: AstNode | None  # None when parsing failed
    source: str
    diagnostics: list[str] = field(default_factory=list)  # Linter warnings
    methods: list[Method] = field(default_factory=list)

    @cached_property
    def fingerprint(self) -> str:
        """Content identity used for result memoization."""
        return _fingerprint(self.tree, self.source)


@dataclass
class Lab:
    """
    All submissions of one student for one assignment.

    ``submissions is None`` means the lab was never materialized (nothing
    cached, nothing parsed); an empty list means it exists but holds nothing
    usable.
    """
    owner: str
    assignment: int
    submissions: list[Submission] | None = None

    @property
    def comparable(self) -> list[Submission]:
        """Submissions that take part in comparisons (parsed successfully)."""
        return [item for item in self.submissions or [] if item.tree is not None]


@dataclass(frozen=True)
class MethodFinding:
    """Two methods flagged as structurally similar."""
    subject: Method
    match: Method
    score: float


@dataclass(frozen=True)
class Finding:
    """Two submissions flagged as structurally similar."""
    subject: Submission
    match: Submission
    score: float
    methods: tuple[MethodFinding, ...] = ()  # Filled at method granularity


@dataclass
class ComparisonReport:
    """Aggregated findings for one subject lab."""
    subject: Lab
    findings: dict[str, list[Finding]] = field(default_factory=dict)  # owner -> findings
    failures: dict[str, str] = field(default_factory=dict)  # owner -> error message

    @property
    def flagged_count(self) -> int:
        return sum(len(items) for items in self.findings.values())
