# ready_harness/framework/logger.py
"""Harness logger.

Exposes LOGGER, the standard Python logger shared by every harness module.
Its level comes from READY_HARNESS_LOG_LEVEL (INFO by default); DEBUG adds the
child's environment and every line it writes to the ready stream.
"""

import logging
import sys

from ready_harness.config import LOG_LEVEL

LOGGER = logging.getLogger("ready_harness")
LOGGER.setLevel(LOG_LEVEL)

_handler = logging.StreamHandler(sys.stderr)
_handler.setFormatter(logging.Formatter("%(asctime)s %(name)s [%(process)d] %(levelname)-5s %(message)s"))
LOGGER.addHandler(_handler)
