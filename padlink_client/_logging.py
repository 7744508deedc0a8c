# =============================================================================
# PadLink Python Client -- Logging
# =============================================================================

import logging

logger = logging.getLogger("padlink_client")
logger.addHandler(logging.NullHandler())
