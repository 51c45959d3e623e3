"""
Unit tests for labguard/linter.py

The external checker is never run: subprocess.run is mocked.
"""
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

from labguard.linter import DEFAULT_LINTER_COMMAND, Linter


def completed(returncode: int, stdout: str = "", stderr: str = "") -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestLinter:
    """Tests for Linter.analyze."""

    @patch("labguard.linter.subprocess.run")
    def test_diagnostics_returned(self, mock_run):
        mock_run.return_value = completed(
            1, "a.py:1:8: F401 [*] `os` imported but unused\na.py:3:1: E741 Ambiguous variable name\n"
               "Found 2 errors.\n[*] 1 fixable with the `--fix` option.\n"
        )
        diagnostics = Linter().analyze(Path("a.py"))
        assert diagnostics == [
            "a.py:1:8: F401 [*] `os` imported but unused",
            "a.py:3:1: E741 Ambiguous variable name",
        ]

    @patch("labguard.linter.subprocess.run")
    def test_clean_file(self, mock_run):
        mock_run.return_value = completed(0, "All checks passed!\n")
        assert Linter().analyze(Path("a.py")) == []

    @patch("labguard.linter.subprocess.run")
    def test_command_includes_path(self, mock_run):
        mock_run.return_value = completed(0)
        Linter(timeout=5.0).analyze(Path("labs/a.py"))
        args, kwargs = mock_run.call_args
        assert args[0] == [*DEFAULT_LINTER_COMMAND, str(Path("labs/a.py"))]
        assert kwargs["timeout"] == 5.0

    @patch("labguard.linter.subprocess.run")
    def test_missing_executable(self, mock_run):
        """A missing checker becomes a single diagnostic entry."""
        mock_run.side_effect = FileNotFoundError("ruff")
        diagnostics = Linter().analyze(Path("a.py"))
        assert len(diagnostics) == 1
        assert diagnostics[0].startswith("Failed to analyze")

    @patch("labguard.linter.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ruff", timeout=30)
        diagnostics = Linter().analyze(Path("a.py"))
        assert len(diagnostics) == 1
        assert diagnostics[0].startswith("Failed to analyze")

    @patch("labguard.linter.subprocess.run")
    def test_crash_without_output(self, mock_run):
        mock_run.return_value = completed(2, "", "error: invalid option\n")
        assert Linter().analyze(Path("a.py")) == ["Failed to analyze: error: invalid option"]

    @patch("labguard.linter.subprocess.run")
    def test_disabled(self, mock_run):
        assert Linter(enabled=False).analyze(Path("a.py")) == []
        mock_run.assert_not_called()
