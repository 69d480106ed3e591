from __future__ import annotations

from pathlib import Path

INNERVOICE_ROOT = Path(__file__).parent

__version__ = "0.3.0"
