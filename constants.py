import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

REDIS_URL = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}"

DOMAIN = os.getenv("DOMAIN", "localhost")

# Room lifetime bounds (seconds)
DEFAULT_ROOM_TTL_SECONDS = 10 * 60
MIN_ROOM_TTL_SECONDS = 60
MAX_ROOM_TTL_SECONDS = 24 * 60 * 60
MAX_ROOM_MEMBERS = 2

PASSWORD_MIN_LENGTH = 4
PASSWORD_MAX_LENGTH = 50

SENDER_MAX_LENGTH = 100
TEXT_MAX_LENGTH = 1000
EMOJI_MAX_LENGTH = 32
DELETED_MESSAGE_TEXT = "[Message deleted]"

# Edits and deletes are only allowed this long after sending (ms)
MESSAGE_EDIT_WINDOW_MS = 5 * 60 * 1000

TYPING_AUTO_CLEAR_SECONDS = float(os.getenv("TYPING_AUTO_CLEAR_SECONDS", 5))
TYPING_STALE_MS = 6000

# Sliding-window rate limits: (max requests, window seconds)
RATE_LIMIT_IP_MAX = int(os.getenv("RATE_LIMIT_IP_MAX", 50))
RATE_LIMIT_IP_WINDOW = int(os.getenv("RATE_LIMIT_IP_WINDOW", 60))
RATE_LIMIT_USER_MAX = int(os.getenv("RATE_LIMIT_USER_MAX", 15))
RATE_LIMIT_USER_WINDOW = int(os.getenv("RATE_LIMIT_USER_WINDOW", 60))
RATE_LIMIT_ROOM_MAX = int(os.getenv("RATE_LIMIT_ROOM_MAX", 20))
RATE_LIMIT_ROOM_WINDOW = int(os.getenv("RATE_LIMIT_ROOM_WINDOW", 60))

# Cookies
AUTH_COOKIE_NAME = "x-auth-token"
AUTH_HEADER_NAME = "X-Auth-Token"
PASSWORD_COOKIE_NAME = "x-room-password"
PASSWORD_HEADER_NAME = "X-Room-Password"
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "true").lower() in ("1", "true", "yes")
