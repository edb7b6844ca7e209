"""Internal constants shared across the library."""

USER_AGENT = "pygsds/1 (+aiohttp)"

# ------------------------------------------------------------------
# Durable slot keys and bus names
# ------------------------------------------------------------------

#: Unified game + tryout record (canonical).
STORAGE_KEY = "gsds_ctx_v2"
#: Durable slot used as the notification bus.
NOTICE_BUS_KEY = "gsds_notice_bus_v1"
#: Broadcast channel used for low-latency record fan-out.
CONTEXT_CHANNEL = "gsds_ctx"
#: Message type tag carried on the context channel.
CONTEXT_MESSAGE_TYPE = "ctx"
#: MQTT topic prefix for cross-process channels.
MQTT_TOPIC_PREFIX = "gsds/bus"

# ------------------------------------------------------------------
# Record schema
# ------------------------------------------------------------------

#: Scheme B (tryout) field -> scheme A (game) field.
ALIAS_PAIRS: tuple[tuple[str, str], ...] = (
    ("tryout_id", "game_id"),
    ("station_id", "drive_id"),
    ("rep_id", "play_id"),
)
#: Every string field ``clear()`` resets.
KNOWN_FIELDS: tuple[str, ...] = (
    "game_id",
    "drive_id",
    "play_id",
    "tryout_id",
    "station_id",
    "rep_id",
    "period_code",
    "group_code",
)
UPDATED_AT = "updated_at"

# ------------------------------------------------------------------
# Timing
# ------------------------------------------------------------------

DEFAULT_TIME_ZONE = "America/New_York"
DEFAULT_POLL_MS = 1000
MIN_POLL_MS = 300
DEFAULT_PUSH_DEBOUNCE_MS = 150
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_NOTICE_DURATION_MS = 10_000
DEFAULT_PERIOD_REFRESH_SECONDS = 180.0
PERIOD_REFRESH_DEBOUNCE_SECONDS = 0.2
VISIBILITY_CHECK_DELAY_SECONDS = 0.1
MIDNIGHT_MARGIN_SECONDS = 5
HAPTIC_PULSE_MS = 40
