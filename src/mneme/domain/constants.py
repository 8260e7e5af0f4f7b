"""Centralized constants for the Mneme application.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Queue Builder ----------
DEFAULT_FETCH_LIMIT = 50
DEFAULT_DAILY_NEW_LIMIT = 20
SEED_THRESHOLD = 10

# ---------- FSRS ----------
DEFAULT_DESIRED_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 365

# ---------- Exercise judging ----------
PASS_RATING_THRESHOLD = 3  # Good or better counts as a pass

# ---------- Review logs ----------
MULTI_MODE_LABEL = "multi"

# ---------- Statistics ----------
PROGRESS_WINDOW_DAYS = 270
ACCURACY_WINDOW_DAYS = 7
