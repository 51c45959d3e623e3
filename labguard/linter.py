"""
Style linter collaborator.

Runs an external style checker on one file and returns its diagnostics as
human-readable lines. The linter is constructed once at startup and passed
to whoever needs it. A failing linter never stops processing: its error
becomes a single diagnostic entry.
"""
import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_LINTER_COMMAND = ["ruff", "check", "--output-format", "concise", "--no-cache"]

# ruff prints trailers like "Found 3 errors." or "All checks passed!"
_SUMMARY_PREFIXES = ("Found ", "All checks passed", "[*] ", "No fixes available")


class Linter:
    """
    Style checker run as a subprocess.

    Args:
        command: Executable and arguments; the file path is appended
        timeout: Seconds before the check is abandoned
        enabled: When False, analyze() returns no diagnostics
    """

    def __init__(
        self,
        command: list[str] | None = None,
        timeout: float = 30.0,
        enabled: bool = True,
    ):
        self.command = list(command or DEFAULT_LINTER_COMMAND)
        self.timeout = timeout
        self.enabled = enabled

    def analyze(self, path: Path) -> list[str]:
        """
        Lint one file.

        Args:
            path: File to check

        Returns:
            Diagnostic lines in reported order (empty when clean or disabled)
        """
        if not self.enabled:
            return []

        cmd = [*self.command, str(path)]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Linter failed on {path}: {e}")
            return [f"Failed to analyze: {e}"]

        diagnostics = [
            line.strip() for line in result.stdout.splitlines()
            if line.strip() and not line.startswith(_SUMMARY_PREFIXES)
        ]

        # Exit code 1 means "violations found"; anything else with no output is a crash
        if result.returncode not in (0, 1) and not diagnostics:
            message = result.stderr.strip() or f"exit code {result.returncode}"
            logger.warning(f"Linter failed on {path}: {message}")
            return [f"Failed to analyze: {message}"]

        return diagnostics
