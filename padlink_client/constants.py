# =============================================================================
# PadLink Python Client -- Protocol Constants
# =============================================================================
#
# Values match the device-control server's profile and sensor limits.
# =============================================================================

# -- Sensors -------------------------------------------------------------------

SENSOR_COUNT = 4
SENSOR_MIN_VALUE = 0
SENSOR_MAX_VALUE = 1023

# -- Reconnection (seconds) ------------------------------------------------------

RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0
RECONNECT_MAX_ATTEMPTS = 10

# -- Outbound ------------------------------------------------------------------

SEND_STAGGER = 0.01  # seconds between queued sends (10ms)

# -- Messages ------------------------------------------------------------------

MAX_MESSAGE_SIZE = 1_048_576  # 1 MB

# -- Subscription acks -----------------------------------------------------------

ACK_SUBSCRIBED = "Subscribed to:"
ACK_UNSUBSCRIBED = "Unsubscribed from:"
ACK_SEPARATOR = ","

STREAM_STOPPED_MARKER = "stream stopped"

# -- WebSocket close codes -----------------------------------------------------

WS_CLOSE_NORMAL = 1000

# -- Session -------------------------------------------------------------------

OPEN_WAIT_TIMEOUT = 10.0  # seconds __aenter__ waits for the first open
