"""
Shared constants for the page mirror.

Contains common configuration values used across multiple modules.
"""

# Default user agent string for all HTTP requests
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Default request timeout in seconds
DEFAULT_TIMEOUT = 30

# Worker pool sizing
DEFAULT_WORKERS = 10
MIN_WORKERS = 1
MAX_WORKERS = 100

# Queued jobs allowed per worker before submit() applies backpressure
QUEUE_SIZE_FACTOR = 4

# A job is attempted at most this many times
MAX_ATTEMPTS = 3

# Retry n sleeps n * RETRY_BASE_DELAY seconds before re-queueing
RETRY_BASE_DELAY = 0.2

# Upper bound on retry tasks sleeping at the same time
MAX_PENDING_RETRIES = 50

# Seconds between two progress callbacks
PROGRESS_INTERVAL = 1.0

# Output layout, relative to the output root
ASSETS_DIR = "assets"
IMAGES_DIR = "assets/images"
FONTS_DIR = "assets/fonts"

DEFAULT_OUTPUT_DIR = "output"
DEFAULT_DOCUMENT_NAME = "index.html"

# Default port for the preview server
DEFAULT_SERVE_PORT = 8080
