"""Allow ``python -m soulmint``."""

import sys

from soulmint.cli import main

sys.exit(main())
