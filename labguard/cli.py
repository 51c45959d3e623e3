"""
Command-line entry point.

Usage:
    python main.py <owner> <assignment> <source_dir> [options]

Parses (or loads from cache) the owner's lab, compares it with every other
cached lab of the same assignment and writes a JSON report.
"""
import argparse
import logging
import os
import re
import sys
from pathlib import Path

from .config import Granularity, load_config
from .errors import ConfigError, OrchestrationError, StorageError
from .orchestrator import PlagiarismOrchestrator
from .parser import PythonParser
from .report import format_summary, save_report
from .storage import LabStorage

logger = logging.getLogger(__name__)

OWNER_PATTERN = re.compile(r"[A-Za-z0-9_.-]+")


def setup_logging() -> str:
    """Configure root logging to console and file; returns the log file path."""
    log_dir = os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    # Set log level from environment (default: INFO)
    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    log_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    log_file = os.path.abspath(os.path.join(log_dir, "labguard.log"))
    already_configured = any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == log_file
        for handler in root_logger.handlers
    )
    if not already_configured:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(log_formatter)
        root_logger.addHandler(console_handler)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(log_formatter)
        root_logger.addHandler(file_handler)

    logger.info(f"Logging initialized. Log file: {log_file}")
    return log_file


def _owner(value: str) -> str:
    if not OWNER_PATTERN.fullmatch(value) or value in (".", ".."):
        raise argparse.ArgumentTypeError(f"invalid owner id {value!r}: use letters, digits, '.', '_' or '-'")
    return value


def _assignment(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"assignment must be an integer, got {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"assignment must be positive, got {number}")
    return number


def _directory(value: str) -> Path:
    path = Path(value)
    if not path.is_dir():
        raise argparse.ArgumentTypeError(f"source directory not found: {value}")
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="labguard",
        description="Detect structurally similar code between student lab submissions.",
    )
    parser.add_argument("owner", type=_owner, help="Student identifier of the lab under check")
    parser.add_argument("assignment", type=_assignment, help="Assignment (lab) number")
    parser.add_argument("source_dir", type=_directory, help="Directory with the lab's source files")
    parser.add_argument("--config", help="YAML configuration file (default: labguard.yaml if present)")
    parser.add_argument("--cache-root", help="Directory of the parsed lab cache")
    parser.add_argument("--threshold", type=float, help="Similarity above which a pair is flagged")
    parser.add_argument(
        "--granularity",
        choices=[item.value for item in Granularity],
        help="Compare whole files or individual methods",
    )
    parser.add_argument("--report", help="Where to write the JSON report (default: reports/<owner>-<assignment>.json)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the detection pipeline; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging()

    try:
        config = load_config(
            args.config,
            cache_root=args.cache_root,
            threshold=args.threshold,
            granularity=args.granularity,
        )
        storage = LabStorage(config.cache_root, PythonParser(), config.build_linter(), config.source_suffixes)
    except (ConfigError, StorageError) as e:
        parser.error(str(e))

    subject = storage.load_or_build(args.owner, args.assignment, args.source_dir)
    others = storage.load_all(args.assignment)

    orchestrator = PlagiarismOrchestrator(config.build_detector(), config)
    try:
        report = orchestrator.find_plagiarists(subject, others)
    except OrchestrationError as e:
        logger.error(f"Detection aborted: {e}")
        return 1

    report_path = args.report or Path("reports") / f"{args.owner}-{args.assignment}.json"
    try:
        save_report(report, report_path)
    except OSError:
        return 1

    print(format_summary(report))
    return 0


if __name__ == "__main__":
    sys.exit(main())
