#!/usr/bin/env python3
"""Test runner that puts the project root on the path before running pytest."""
import sys
from pathlib import Path

# Top-level packages (app, auth, billing, generation, ledger, persistence) import from here
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Now import and run pytest
import pytest

if __name__ == "__main__":
    # Pass through any command line arguments; default to the whole suite
    sys.exit(pytest.main(sys.argv[1:] or ["-q"]))
