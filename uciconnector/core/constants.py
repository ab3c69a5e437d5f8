# Protocol strings
POSITION_PREFIX = "position startpos moves "
GO_COMMAND = "go\n"
QUIT_COMMAND = "quit\n"
BESTMOVE_MARKER = b"bestmove "
MOVE_LENGTH = 4

# Timing defaults (seconds)
DEFAULT_RESPONSE_DELAY = 0.5
DEFAULT_MOVE_TIMEOUT = 5.0
DEFAULT_POLL_INTERVAL = 0.01
DEFAULT_SHUTDOWN_TIMEOUT = 5.0
DEFAULT_KILL_TIMEOUT = 2.0
DEFAULT_STARTUP_CHECK_DELAY = 0.0

# Buffer sizes
DEFAULT_READ_CHUNK_SIZE = 2047
DEFAULT_MAX_BUFFER_BYTES = 1024 * 1024

POLL_STRATEGY_DEADLINE = "deadline"
POLL_STRATEGY_FIXED_DELAY = "fixed_delay"
POLL_STRATEGIES = (POLL_STRATEGY_DEADLINE, POLL_STRATEGY_FIXED_DELAY)

CHANNEL_MODE_AUTO = "auto"
CHANNEL_MODE_POSIX = "posix"
CHANNEL_MODE_THREADED = "threaded"
CHANNEL_MODES = (CHANNEL_MODE_AUTO, CHANNEL_MODE_POSIX, CHANNEL_MODE_THREADED)
