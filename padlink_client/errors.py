# =============================================================================
# PadLink Python Client -- Error Types
# =============================================================================


class PadLinkError(Exception):
    """Base exception for all PadLink client errors."""


class PadLinkConnectionError(PadLinkError):
    """Channel-related errors (failed to open, lost connection, send on closed)."""


class PadLinkProtocolError(PadLinkError):
    """Wire protocol errors (undecodable or malformed frames)."""


class PadLinkCommandError(PadLinkError, ValueError):
    """A command was built with out-of-range or missing values."""
