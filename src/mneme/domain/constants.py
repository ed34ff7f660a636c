"""Centralized constants for the scheduler.

All magic numbers and defaults live here so every layer imports from a
single source of truth.
"""

# ---------- Learning phase ----------
LEARNING_STEPS: tuple[int, ...] = (10, 30)  # minutes
MINUTES_PER_DAY = 60 * 24

# ---------- Easiness factor ----------
DEFAULT_EF = 2.5
MIN_EF = 1.3

# ---------- Ratings ----------
MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3

# ---------- Graduated intervals (days) ----------
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6

# ---------- Stats ----------
EF_HIGH = 2.5
EF_MEDIUM = 1.8

# ---------- Review Selector ----------
SEARCH_THRESHOLD = 0.6
