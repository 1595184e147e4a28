import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bookings.db")

# Firebase Configuration (dashboard authentication)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Google Calendar OAuth Configuration (tokens are stored encrypted per workspace)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

# Availability engine
# Used when neither the client nor the workspace supplies a timezone.
# Leave unset to keep the legacy host-local decomposition.
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE") or None
DEFAULT_EVENT_DURATION_MINUTES = int(os.getenv("DEFAULT_EVENT_DURATION_MINUTES", "30"))
# Calendar busy lookups never block a booking for longer than this
CALENDAR_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "5"))
# Queuing the calendar sync job never holds an accepted booking response longer than this
ENQUEUE_TIMEOUT_SECONDS = float(os.getenv("ENQUEUE_TIMEOUT_SECONDS", "3"))

# Public embed booking endpoint rate limit (per client IP)
EMBED_BOOKING_RATE_LIMIT = int(os.getenv("EMBED_BOOKING_RATE_LIMIT", "20"))
EMBED_BOOKING_RATE_WINDOW = int(os.getenv("EMBED_BOOKING_RATE_WINDOW", "3600"))

# CORS - the embed widget is served from customer sites
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:3001",
).split(",")
