"""
Pytest configuration and shared fixtures for testing.
"""
import pytest
import os
import sys
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from labguard.config import DetectionConfig, LinterConfig
from labguard.linter import Linter
from labguard.models import Lab, Submission
from labguard.parser import PythonParser


STACK_SOURCE = '''\
class Stack:
    def __init__(self):
        self.items = []

    def push(self, item):
        self.items.append(item)

    def pop(self):
        if not self.items:
            raise IndexError("pop from empty stack")
        return self.items.pop()

    def size(self):
        return len(self.items)
'''

# Same structure, every identifier and literal changed
STACK_RENAMED_SOURCE = '''\
class Pile:
    # storage for things
    def __init__(self):
        self.data = []

    def add(self, value):
        self.data.append(value)

    def take(self):
        if not self.data:
            raise IndexError("nothing here")
        return self.data.pop()

    def count(self):
        return len(self.data)
'''

UNRELATED_SOURCE = '''\
import math

def area(radius):
    return math.pi * radius ** 2

for r in range(10):
    print(r, area(r))
'''


@pytest.fixture(autouse=True)
def clean_labguard_env(monkeypatch):
    """Keep developer environment overrides out of the tests."""
    for name in ("LABGUARD_CACHE_ROOT", "LABGUARD_WORKERS", "LABGUARD_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def parser():
    return PythonParser()


@pytest.fixture
def make_submission(parser):
    """Factory: parse source text into a Submission."""
    def _make(name: str, source: str) -> Submission:
        parsed = parser.parse(source, name)
        if parsed is None:
            return Submission(name=name, tree=None, source=source)
        return Submission(name=name, tree=parsed.tree, source=source, methods=parsed.methods)
    return _make


@pytest.fixture
def make_lab(make_submission):
    """Factory: build a Lab from a {file name: source} mapping."""
    def _make(owner: str, files: dict[str, str], assignment: int = 1) -> Lab:
        submissions = [make_submission(name, source) for name, source in sorted(files.items())]
        return Lab(owner=owner, assignment=assignment, submissions=submissions)
    return _make


@pytest.fixture
def detection_config(tmp_path):
    """Small, deterministic configuration without the external linter."""
    return DetectionConfig(
        workers=2,
        cache_root=tmp_path / "cache",
        linter=LinterConfig(enabled=False),
    )


@pytest.fixture
def mock_linter():
    linter = MagicMock(spec=Linter)
    linter.analyze.return_value = ["E501 line too long"]
    return linter
