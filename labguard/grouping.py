"""
Candidate pruning for pairwise comparison.

Entities are bucketed by the length of their normalized source with
fixed-width bins. Only entities whose buckets are adjacent are compared, and
an optional absolute length cutoff filters pairs further. This is an
approximation: two near-duplicates of very different length (for instance a
short method pasted into a much longer one) are never compared and therefore
never reported.
"""
import io
import re
import tokenize
from collections.abc import Sequence

from .detectors import Comparable

_COMMENT = re.compile(r"#[^\n]*")
_STRING = re.compile(r"(?s)(\"\"\".*?\"\"\"|'''.*?'''|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*')")
_NUMBER = re.compile(r"\b\d+(?:\.\d+)?\b")
_WHITESPACE = re.compile(r"\s+")

_SKIPPED_TOKENS = {
    tokenize.COMMENT,
    tokenize.NL,
    tokenize.NEWLINE,
    tokenize.INDENT,
    tokenize.DEDENT,
    tokenize.ENCODING,
    tokenize.ENDMARKER,
}


def _normalize_with_regex(code: str) -> str:
    code = _STRING.sub('"s"', code)
    code = _COMMENT.sub("", code)
    code = _NUMBER.sub("0", code)
    return _WHITESPACE.sub("", code)


def normalize_source(code: str) -> str:
    """
    Remove cosmetic variance from source text.

    Comments and whitespace are dropped, numeric literals become ``0`` and
    string literals become ``"s"``. Text the tokenizer rejects is normalized
    with regular expressions instead.

    Examples:
        >>> normalize_source("x = 42  # answer\\nname = 'bob'\\n")
        'x=0name="s"'
    """
    parts = []
    try:
        for token in tokenize.generate_tokens(io.StringIO(code).readline):
            if token.type in _SKIPPED_TOKENS:
                continue
            if token.type == tokenize.NUMBER:
                parts.append("0")
            elif token.type == tokenize.STRING:
                parts.append('"s"')
            else:
                parts.append(token.string)
    except (tokenize.TokenError, IndentationError, SyntaxError):
        return _normalize_with_regex(code)
    return _WHITESPACE.sub("", "".join(parts))


class GroupKeySelector:
    """
    Fixed-width length binning: ``key = (length - min_length) // step``.

    Args:
        min_length: Lower edge of bucket 0
        step: Bucket width in normalized characters
        max_length_delta: Optional absolute cutoff on normalized length difference
    """

    def __init__(self, min_length: int = 0, step: int = 500, max_length_delta: int | None = None):
        if step <= 0:
            raise ValueError(f"step must be positive, got {step}")
        if max_length_delta is not None and max_length_delta < 0:
            raise ValueError(f"max_length_delta must be non-negative, got {max_length_delta}")
        self.min_length = min_length
        self.step = step
        self.max_length_delta = max_length_delta
        self._lengths: dict[str, int] = {}

    def normalized_length(self, entity: Comparable) -> int:
        key = entity.fingerprint
        length = self._lengths.get(key)
        if length is None:
            length = len(normalize_source(entity.source))
            self._lengths[key] = length
        return length

    def key_for_length(self, length: int) -> int:
        """
        Examples:
            >>> GroupKeySelector(min_length=100, step=50).key_for_length(260)
            3
        """
        return (length - self.min_length) // self.step

    def select_group_key(self, entity: Comparable) -> int:
        return self.key_for_length(self.normalized_length(entity))

    def group(self, entities: Sequence[Comparable]) -> dict[int, list[int]]:
        """Map bucket key -> indices of entities in that bucket, ascending."""
        groups: dict[int, list[int]] = {}
        for index, entity in enumerate(entities):
            groups.setdefault(self.select_group_key(entity), []).append(index)
        return groups

    @staticmethod
    def candidates(groups: dict[int, list[int]], key: int) -> list[int]:
        """Indices from buckets key-1, key, key+1, in ascending index order."""
        found: list[int] = []
        for neighbour in (key - 1, key, key + 1):
            found.extend(groups.get(neighbour, ()))
        return sorted(found)

    def within_cutoff(self, first: Comparable, second: Comparable) -> bool:
        if self.max_length_delta is None:
            return True
        delta = abs(self.normalized_length(first) - self.normalized_length(second))
        return delta <= self.max_length_delta

    def select_candidates(
        self,
        pool: Sequence[Comparable],
        groups: dict[int, list[int]],
        entity: Comparable,
    ) -> list[int]:
        """Indices of ``pool`` worth comparing with ``entity``."""
        return [
            index for index in self.candidates(groups, self.select_group_key(entity))
            if self.within_cutoff(pool[index], entity)
        ]
