import os

STORE_URL = os.getenv("STORE_URL")
STORE_KEY = os.getenv("STORE_KEY")
REDIS_URL = os.getenv("REDIS_URL")

if not STORE_URL:
    raise RuntimeError("STORE_URL environment variable is not set")
if not STORE_KEY:
    raise RuntimeError("STORE_KEY environment variable is not set")
if not REDIS_URL:
    raise RuntimeError("REDIS_URL environment variable is not set")

STORE_TIMEOUT = float(os.getenv("STORE_TIMEOUT") or "5")

# shared by store range requests and list responses
PAGE_SIZE = int(os.getenv("PAGE_SIZE") or "10")

CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS") or "60")

VIEWER_TIMEZONE = os.getenv("VIEWER_TIMEZONE") or "UTC"
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL") or "$"

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

BREAKER_FAILURE_THRESHOLD = int(os.getenv("BREAKER_FAILURE_THRESHOLD") or "5")
BREAKER_RESET_SECONDS = int(os.getenv("BREAKER_RESET_SECONDS") or "10")
# failures older than this no longer count towards the threshold
BREAKER_FAILURE_WINDOW_SECONDS = int(os.getenv("BREAKER_FAILURE_WINDOW_SECONDS") or "60")
# a half-open trial that never reports back frees its slot after this long
BREAKER_TRIAL_TIMEOUT_SECONDS = int(os.getenv("BREAKER_TRIAL_TIMEOUT_SECONDS") or "10")
