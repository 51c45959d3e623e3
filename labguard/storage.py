"""
On-disk cache of parsed labs.

Layout: ``<cache_root>/<owner>/<assignment>/<quoted submission name>.json``,
one file per submission, so a failed or corrupt write only ever affects
that one submission. Trees are stored as a flat preorder list of
``[label, child_count]`` pairs, a format decoupled from :class:`AstNode`
and converted by :func:`encode_tree` / :func:`decode_tree`.
"""
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from pydantic import BaseModel, ValidationError

from .errors import StorageError
from .linter import Linter
from .models import Lab, Method, Submission
from .parser import PythonParser
from .tree import AstNode, iter_preorder

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
ENTRY_SUFFIX = ".json"


class StoredMethod(BaseModel):
    name: str
    source: str
    tree: list[tuple[str, int]] | None = None


class StoredSubmission(BaseModel):
    format_version: int
    name: str
    source_sha256: str
    source: str
    diagnostics: list[str] = []
    tree: list[tuple[str, int]]
    methods: list[StoredMethod] = []


def encode_tree(root: AstNode | None) -> list[tuple[str, int]] | None:
    """
    Flatten a tree into preorder ``(label, child_count)`` pairs.

    Examples:
        >>> from labguard.tree import node
        >>> encode_tree(node("If", node("Compare"), node("Return")))
        [('If', 2), ('Compare', 0), ('Return', 0)]
    """
    if root is None:
        return None
    return [(item.label, len(item.children)) for item in iter_preorder(root)]


def decode_tree(nodes: list[tuple[str, int]] | None) -> AstNode | None:
    """
    Rebuild a tree from preorder ``(label, child_count)`` pairs.

    Raises:
        ValueError: if the sequence does not describe exactly one tree
    """
    if nodes is None:
        return None
    if not nodes:
        raise ValueError("Stored tree is empty")

    root: AstNode | None = None
    # Each frame: label, expected child count, children built so far
    stack: list[tuple[str, int, list[AstNode]]] = []
    for label, child_count in nodes:
        if root is not None:
            raise ValueError("Stored tree has nodes after the root was completed")
        if child_count < 0:
            raise ValueError(f"Negative child count for {label!r}")

        stack.append((label, child_count, []))
        while stack and len(stack[-1][2]) == stack[-1][1]:
            finished_label, _, children = stack.pop()
            finished = AstNode(finished_label, tuple(children))
            if stack:
                stack[-1][2].append(finished)
            else:
                root = finished

    if stack or root is None:
        raise ValueError("Stored tree is truncated")
    return root


def source_digest(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


def to_stored(submission: Submission) -> StoredSubmission:
    return StoredSubmission(
        format_version=FORMAT_VERSION,
        name=submission.name,
        source_sha256=source_digest(submission.source),
        source=submission.source,
        diagnostics=list(submission.diagnostics),
        tree=encode_tree(submission.tree),
        methods=[
            StoredMethod(name=method.name, source=method.source, tree=encode_tree(method.tree))
            for method in submission.methods
        ],
    )


def from_stored(stored: StoredSubmission) -> Submission:
    return Submission(
        name=stored.name,
        tree=decode_tree(stored.tree),
        source=stored.source,
        diagnostics=list(stored.diagnostics),
        methods=[
            Method(name=method.name, source=method.source, tree=decode_tree(method.tree))
            for method in stored.methods
        ],
    )


class LabStorage:
    """
    Load-or-build cache of parsed labs.

    Args:
        cache_root: Root directory of the cache
        parser: Parser collaborator
        linter: Linter collaborator
        suffixes: File suffixes treated as submissions

    Raises:
        StorageError: if cache_root cannot be created
    """

    def __init__(
        self,
        cache_root: str | Path,
        parser: PythonParser,
        linter: Linter,
        suffixes: tuple[str, ...] | list[str] = (".py",),
    ):
        self.cache_root = Path(cache_root)
        self.parser = parser
        self.linter = linter
        self.suffixes = tuple(suffixes)
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create cache directory {self.cache_root}: {e}") from e

    def lab_path(self, owner: str, assignment: int) -> Path:
        return self.cache_root / owner / str(assignment)

    def entry_path(self, owner: str, assignment: int, name: str) -> Path:
        return self.lab_path(owner, assignment) / f"{quote(name, safe='')}{ENTRY_SUFFIX}"

    def discover(self, source_dir: Path) -> list[Path]:
        """Submission files below source_dir, sorted for a stable order."""
        return sorted(
            path for path in source_dir.rglob("*")
            if path.is_file() and path.suffix in self.suffixes
        )

    def load_or_build(self, owner: str, assignment: int, source_dir: str | Path) -> Lab:
        """
        Materialize a lab, parsing only files without a valid cache entry.

        A cached entry is reused when it deserializes and was built from the
        same source text. Everything else is parsed, linted and persisted.
        Files that fail to parse are left out of the lab.

        Args:
            owner: Student identifier
            assignment: Assignment number
            source_dir: Directory with the lab's source files

        Returns:
            Materialized Lab (submissions never None)
        """
        source_dir = Path(source_dir)
        submissions: list[Submission] = []
        kept_entries: set[str] = set()
        reused = 0

        for path in self.discover(source_dir):
            name = path.relative_to(source_dir).as_posix()
            try:
                source = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable file {path}: {e}")
                continue

            entry = self.entry_path(owner, assignment, name)
            submission = self._load_entry(entry, expected_digest=source_digest(source))
            if submission is not None:
                reused += 1
            else:
                submission = self._build(path, name, source)
                if submission is None:
                    continue
                self._save_entry(entry, submission)

            kept_entries.add(entry.name)
            submissions.append(submission)

        self._prune(self.lab_path(owner, assignment), kept_entries)
        logger.info(
            f"Lab {owner}/{assignment}: {len(submissions)} submissions "
            f"({reused} from cache, {len(submissions) - reused} parsed)"
        )
        return Lab(owner=owner, assignment=assignment, submissions=submissions)

    def save(self, lab: Lab) -> None:
        """Persist every submission of a lab, one entry each."""
        for submission in lab.submissions or []:
            self._save_entry(self.entry_path(lab.owner, lab.assignment, submission.name), submission)

    def load_lab(self, owner: str, assignment: int) -> Lab:
        """
        Load a lab from the cache only.

        Returns:
            Lab with submissions None if nothing was ever cached for it,
            otherwise the readable entries sorted by name
        """
        lab_path = self.lab_path(owner, assignment)
        if not lab_path.is_dir():
            return Lab(owner=owner, assignment=assignment, submissions=None)

        try:
            entries = sorted(lab_path.glob(f"*{ENTRY_SUFFIX}"))
        except OSError as e:
            logger.warning(f"Error listing lab {owner}/{assignment}: {e}")
            return Lab(owner=owner, assignment=assignment, submissions=[])

        submissions = [item for item in map(self._load_entry, entries) if item is not None]
        submissions.sort(key=lambda item: item.name)
        return Lab(owner=owner, assignment=assignment, submissions=submissions)

    def load_all(self, assignment: int) -> list[Lab]:
        """Every cached lab for an assignment, sorted by owner."""
        try:
            owners = sorted(path.name for path in self.cache_root.iterdir() if path.is_dir())
        except OSError as e:
            logger.warning(f"Error listing cache {self.cache_root}: {e}")
            return []

        labs = []
        for owner in owners:
            lab = self.load_lab(owner, assignment)
            if lab.submissions is not None:
                labs.append(lab)
        logger.info(f"Loaded {len(labs)} cached labs for assignment {assignment}")
        return labs

    def _build(self, path: Path, name: str, source: str) -> Submission | None:
        parsed = self.parser.parse(source, name)
        if parsed is None:
            logger.warning(f"Excluding {name}: not parseable")
            return None
        return Submission(
            name=name,
            tree=parsed.tree,
            source=source,
            diagnostics=self.linter.analyze(path),
            methods=parsed.methods,
        )

    def _load_entry(self, entry: Path, expected_digest: str | None = None) -> Submission | None:
        if not entry.is_file():
            return None
        try:
            stored = StoredSubmission.model_validate_json(entry.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable cache entry {entry}: {e}")
            return None

        if stored.format_version != FORMAT_VERSION:
            logger.info(f"Cache entry {entry} has format {stored.format_version}, rebuilding")
            return None
        if expected_digest is not None and stored.source_sha256 != expected_digest:
            logger.info(f"Cache entry {entry} is stale, rebuilding")
            return None

        try:
            return from_stored(stored)
        except ValueError as e:
            logger.warning(f"Ignoring corrupt cache entry {entry}: {e}")
            return None

    def _save_entry(self, entry: Path, submission: Submission) -> None:
        payload = to_stored(submission).model_dump_json()
        temp_name = None
        try:
            entry.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=entry.parent, suffix=".tmp", delete=False
            ) as f:
                temp_name = f.name
                f.write(payload)
            os.replace(temp_name, entry)
        except OSError as e:
            logger.warning(f"Could not write cache entry {entry}: {e}")
            if temp_name is not None and os.path.exists(temp_name):
                os.remove(temp_name)

    @staticmethod
    def _prune(lab_path: Path, keep: set[str]) -> None:
        """Remove entries of files that no longer exist or no longer parse."""
        if not lab_path.is_dir():
            return
        for entry in lab_path.glob(f"*{ENTRY_SUFFIX}"):
            if entry.name not in keep:
                try:
                    entry.unlink()
                    logger.info(f"Removed stale cache entry for {unquote(entry.stem)}")
                except OSError as e:
                    logger.warning(f"Could not remove stale cache entry {entry}: {e}")
