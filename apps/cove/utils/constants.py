"""
Constants used across the matching lifecycle.
"""

# Intention / match lifetimes
INTENTION_TTL_HOURS = 72  # How long a new intention stays valid
MATCH_TTL_DAYS = 7  # How long a match stays open for acceptance

# Batch matcher cadence (UTC hours, advisory only)
BATCH_INTERVAL_HOURS = 3

# Pool tier promotion thresholds, measured from PoolEntry.joined_at
TIER_1_AFTER_HOURS = 24
TIER_2_AFTER_HOURS = 48
MAX_TIER = 2

# Only pairs can currently be accepted into a thread
ACCEPTABLE_GROUP_SIZE = 2

# Intention kinds accepted in chips.what.intention
INTENTION_KINDS = ("friends", "romantic")
