"""
Entry Point - Module Execution

This module serves as the entry point when running the package as a module:
    python -m inscription_reader

All command-line argument parsing and application initialization logic
is in cli.py.
"""

import sys

from inscription_reader.cli import main

if __name__ == "__main__":
    sys.exit(main())
