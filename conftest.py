"""Pytest configuration to ensure the in-repo src package is importable."""
from __future__ import annotations

import os
import sys
from pathlib import Path

SRC_PATH = Path(__file__).resolve().parent / "src"
if SRC_PATH.exists():
    sys.path.insert(0, str(SRC_PATH))

# Headless plotting and no progress bars during tests.
os.environ.setdefault("MPLBACKEND", "Agg")
os.environ.setdefault("PROTODIAG_VERBOSITY", "0")
