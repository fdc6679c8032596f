"""!
@brief Support ``python -m cygwin_janitor``.
"""
from __future__ import annotations

import sys

from .main import main

sys.exit(main())
