from __future__ import annotations

import sys

from aware_rollup.cli.build import main

if __name__ == "__main__":
    sys.exit(main())
