"""
labguard entry point.

    python main.py <owner> <assignment> <source_dir> [--config labguard.yaml]
"""
import sys

from labguard.cli import main

if __name__ == "__main__":
    sys.exit(main())
