"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_NOTES_LENGTH = 5000  # Free-text rationale on connections

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Notification delivery
NOTIFICATION_SCHEDULER_MAX_INSTANCES = 1  # Prevent overlapping dispatcher runs
NOTIFICATION_MAX_BACKOFF_SECONDS = 3600  # Cap exponential backoff at one hour
NOTIFICATION_CLAIM_LEASE_SECONDS = 300  # Claimed rows not finished within this are picked up again
