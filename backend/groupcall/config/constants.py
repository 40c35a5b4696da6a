"""
Application-wide constants for group call coordination.

This file centralizes the timing and retry parameters of the call
lifecycle so they can be tuned in one place.

Note: Environment-dependent settings (DB, Redis, API) belong in settings.py.
This file is for operational parameters that rarely change between environments.
"""

# ==============================================================================
# SESSION LIFECYCLE
# ==============================================================================

# Prefix of the real-time channel name of every call session
SESSION_CHANNEL_PREFIX: str = "group-call-"

# Default call type when the initiator does not choose one
DEFAULT_CALL_TYPE: str = "video"

# A ringing session older than this is considered abandoned (seconds)
RINGING_STALE_AFTER_SEC: float = 5 * 60

# Delay before a session left with a single participant is auto-ended (seconds)
ABANDONMENT_TIMEOUT_SEC: float = 30.0

# Reason attached to call_ended when the abandonment timer ends a session
END_REASON_NO_PARTICIPANTS: str = "no_participants"

# ==============================================================================
# OPTIMISTIC CONCURRENCY
# ==============================================================================

# Attempts of a conflicting read-modify-write before giving up
WRITE_RETRY_MAX_ATTEMPTS: int = 3

# Backoff unit between attempts (seconds); attempt N sleeps N * this value
WRITE_RETRY_BACKOFF_SEC: float = 0.1

# ==============================================================================
# REAL-TIME EVENTS (wire names, do not rename)
# ==============================================================================

EVENT_CALL_INVITE: str = "call_invite"
EVENT_PARTICIPANT_JOINED: str = "participant_joined"
EVENT_PARTICIPANT_LEFT: str = "participant_left"
EVENT_CALL_ENDED: str = "call_ended"

# Redis pub/sub channel carrying relayed events between API processes
EVENT_RELAY_CHANNEL: str = "channel:group_call_events"

# Upper bound on a single socket send and on a relay publish
SEND_TIMEOUT_SEC: float = 5.0

# ==============================================================================
# DATABASE
# ==============================================================================

DB_POOL_SIZE: int = 10
DB_POOL_MAX_OVERFLOW: int = 20
