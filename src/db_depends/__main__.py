"""Allow ``python -m db_depends``."""

import sys

from db_depends.cli import main

sys.exit(main())
