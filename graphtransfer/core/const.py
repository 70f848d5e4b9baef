import os

API_URL = os.getenv("GRAPHTRANSFER_API_URL", "https://graph.microsoft.com/v1.0")

# Non-final slices must be a multiple of this many bytes.
UPLOAD_ALIGNMENT_UNIT = 320 * 1024
MAX_SLICE_SIZE = 60 * 1024 * 1024
DEFAULT_SLICE_SIZE = 10 * UPLOAD_ALIGNMENT_UNIT

DEFAULT_MAX_RETRIES = 5
MAX_BACKOFF_SECONDS = 300
REQUEST_TIMEOUT_SECONDS = 300
