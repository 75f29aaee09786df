"""Allow running restserver as a module: python -m restserver."""

import sys

from restserver.cli import main

if __name__ == "__main__":
    sys.exit(main())
