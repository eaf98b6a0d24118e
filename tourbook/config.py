"""
Runtime settings for the booking engine, read from the environment.
"""
import os

LOG_LEVEL = os.getenv("TOURBOOK_LOG_LEVEL", "INFO").upper()

# Catalog size cap per tour
MAX_ADD_ONS_PER_TOUR = int(os.getenv("TOURBOOK_MAX_ADD_ONS_PER_TOUR", "10"))

# Seconds between lifecycle sweeps run by the API process; 0 disables the loop
SWEEP_INTERVAL_SECONDS = int(os.getenv("TOURBOOK_SWEEP_INTERVAL_SECONDS", "60"))

DEFAULT_CURRENCY = os.getenv("TOURBOOK_DEFAULT_CURRENCY", "BRL")

MAX_TITLE_LENGTH = 100
MAX_NAME_LENGTH = 100
MAX_REVIEW_COMMENT_LENGTH = 1000
