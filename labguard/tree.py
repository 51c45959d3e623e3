"""
Labeled ordered tree used by every comparison component.

Nodes are immutable. Each node computes its structural digest, subtree size
and height once, at construction, from its already-built children, so identity is
structural and never requires a recursive walk.
"""
import hashlib
from dataclasses import dataclass, field
from typing import Iterator


@dataclass(frozen=True, eq=False)
class AstNode:
    """A node of an ordered labeled tree."""
    label: str  # Syntactic construct kind, e.g. "ClassDef", "If"
    children: tuple["AstNode", ...] = ()
    digest: str = field(init=False, repr=False)
    size: int = field(init=False, repr=False)
    height: int = field(init=False, repr=False)  # Levels, a leaf has height 1

    def __post_init__(self):
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))

        hasher = hashlib.sha1(self.label.encode("utf-8"))
        hasher.update(b"(")
        for child in self.children:
            hasher.update(child.digest.encode("ascii"))
            hasher.update(b",")
        hasher.update(b")")

        object.__setattr__(self, "digest", hasher.hexdigest())
        object.__setattr__(self, "size", 1 + sum(child.size for child in self.children))
        object.__setattr__(self, "height", 1 + max((child.height for child in self.children), default=0))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AstNode):
            return NotImplemented
        return self.digest == other.digest

    def __hash__(self) -> int:
        return hash(self.digest)


def node(label: str, *children: AstNode) -> AstNode:
    """
    Shorthand constructor.

    Examples:
        >>> node("If", node("Compare"), node("Return")).size
        3
    """
    return AstNode(label, children)


def tree_size(root: AstNode | None) -> int:
    """Number of nodes in the tree; an absent tree has size 0."""
    return 0 if root is None else root.size


def iter_preorder(root: AstNode | None) -> Iterator[AstNode]:
    """Yield nodes in preorder without recursion."""
    if root is None:
        return
    stack = [root]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def render_tree(root: AstNode | None) -> str:
    """
    Render a tree as ``Label (child, child)``.

    Examples:
        >>> render_tree(node("Module", node("FunctionDef", node("arguments")), node("Expr")))
        'Module (FunctionDef (arguments), Expr)'
    """
    if root is None:
        return ""

    parts: list[str] = []
    # Each frame: node, index of the next child to render
    stack: list[list] = [[root, 0]]
    parts.append(root.label)
    while stack:
        frame = stack[-1]
        current, index = frame
        if index == 0 and current.children:
            parts.append(" (")
        if index < len(current.children):
            if index > 0:
                parts.append(", ")
            frame[1] += 1
            child = current.children[index]
            parts.append(child.label)
            stack.append([child, 0])
            continue
        if current.children:
            parts.append(")")
        stack.pop()
    return "".join(parts)
