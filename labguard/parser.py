"""
Python source parser.

Turns source text into :class:`AstNode` trees (node label = AST class name)
and extracts functions and methods as independent subtrees. A file that
does not parse yields None; errors never propagate to the caller.
"""
import ast
import logging
import textwrap
from dataclasses import dataclass, field

from .models import Method
from .tree import AstNode

logger = logging.getLogger(__name__)

_FUNCTION_TYPES = (ast.FunctionDef, ast.AsyncFunctionDef)


@dataclass
class ParsedSource:
    """Result of parsing one file."""
    tree: AstNode
    methods: list[Method] = field(default_factory=list)


def _structural_children(node: ast.AST) -> list[ast.AST]:
    # Load/Store/Del markers repeat what the parent already says
    return [child for child in ast.iter_child_nodes(node) if not isinstance(child, ast.expr_context)]


def convert(root: ast.AST) -> AstNode:
    """
    Convert a Python AST into an :class:`AstNode` tree without recursion.

    Examples:
        >>> from labguard.tree import render_tree
        >>> render_tree(convert(ast.parse("x = 1")))
        'Module (Assign (Name, Constant))'
    """
    # Each frame: AST node, its structural children, converted children so far
    stack: list[tuple[ast.AST, list[ast.AST], list[AstNode]]] = [(root, _structural_children(root), [])]
    converted: AstNode | None = None
    while stack:
        current, pending, built = stack[-1]
        if len(built) < len(pending):
            child = pending[len(built)]
            stack.append((child, _structural_children(child), []))
            continue

        stack.pop()
        converted = AstNode(type(current).__name__, tuple(built))
        if stack:
            stack[-1][2].append(converted)
    return converted


def _source_slice(lines: list[str], node: ast.AST) -> str:
    first = min([node.lineno] + [decorator.lineno for decorator in node.decorator_list])
    last = node.end_lineno or node.lineno
    return textwrap.dedent("".join(lines[first - 1:last]))


def extract_methods(module: ast.AST, source: str) -> list[Method]:
    """
    Extract every function and method, in source order.

    Methods are named by their qualified path, e.g. ``Stack.push`` or
    ``outer.<locals>.inner``.
    """
    lines = source.splitlines(keepends=True)
    methods: list[tuple[int, int, Method]] = []

    # Each entry: AST node, qualified name prefix of its scope
    stack: list[tuple[ast.AST, str]] = [(module, "")]
    while stack:
        current, prefix = stack.pop()
        for child in ast.iter_child_nodes(current):
            if isinstance(child, _FUNCTION_TYPES):
                qualname = f"{prefix}{child.name}"
                methods.append((child.lineno, child.col_offset, Method(
                    name=qualname,
                    source=_source_slice(lines, child),
                    tree=convert(child),
                )))
                stack.append((child, f"{qualname}.<locals>."))
            elif isinstance(child, ast.ClassDef):
                stack.append((child, f"{prefix}{child.name}."))
            else:
                stack.append((child, prefix))

    methods.sort(key=lambda item: (item[0], item[1]))
    return [method for _, _, method in methods]


class PythonParser:
    """Parser collaborator for Python submissions."""

    def parse(self, source: str, name: str = "<unknown>") -> ParsedSource | None:
        """
        Parse one file.

        Args:
            source: Source text
            name: File name used in log messages

        Returns:
            ParsedSource, or None if the file does not parse
        """
        try:
            module = ast.parse(source, filename=name)
            return ParsedSource(tree=convert(module), methods=extract_methods(module, source))
        except (SyntaxError, ValueError, RecursionError) as e:
            logger.warning(f"Could not parse {name}: {e}")
            return None
