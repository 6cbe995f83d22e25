"""coursepass CLI entry point: python -m coursepass"""

from __future__ import annotations

import sys

from coursepass.cli import main

if __name__ == "__main__":
    sys.exit(main())
