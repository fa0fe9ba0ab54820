#!/usr/bin/env python3
"""Run the reconciliation CLI from a source checkout without installing the package.

Installed environments get the same commands through the ``reconcile`` console
script; this wrapper only puts the repository root on ``sys.path`` first::

    python scripts/reconcile_dossier.py compare fragments.json current.json --as-of 2024-01-15
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.curation.review_interface import run  # noqa: E402


def main() -> None:
    """Launch the reconciliation CLI."""
    run()


if __name__ == "__main__":
    main()
