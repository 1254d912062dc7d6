"""Allow ``python -m state_service``."""

import sys

from state_service.main import main

sys.exit(main())
