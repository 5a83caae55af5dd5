"""
Development settings for the pharmacy stock ledger project.
"""

import os
from .base import *

# Development-specific settings
DEBUG = True

# Add Django Debug Toolbar settings (if available)
if DEBUG:
    try:
        import debug_toolbar
        INSTALLED_APPS += ["debug_toolbar"]
        MIDDLEWARE = ["debug_toolbar.middleware.DebugToolbarMiddleware"] + MIDDLEWARE

        # Debug toolbar settings
        INTERNAL_IPS = [
            "127.0.0.1",
        ]
    except ImportError:
        pass

# Configure logging for development
LOGGING["handlers"]["console"]["level"] = "DEBUG"
LOGGING["loggers"]["apps"]["level"] = "DEBUG"

# Log ledger SQL (row locks, balance updates) when asked to
if os.environ.get("LOG_SQL", "").lower() in ("true", "1", "yes", "on"):
    LOGGING["loggers"]["django.db.backends"] = {
        "handlers": ["console"],
        "level": "DEBUG",
        "propagate": False,
    }
