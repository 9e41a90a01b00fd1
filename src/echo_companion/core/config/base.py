"""
Base configuration infrastructure for Echo Companion.

Contains the tunable constants and the Environment enum.
"""

from enum import Enum

# Last K turns sent to the model (3 prior exchanges).
CONTEXT_TURNS = 6

# Idle time after which a session is forgotten.
SESSION_TTL_SECONDS = 3600

DEFAULT_SESSION_ID = "default"


class Environment(Enum):
    """Environment types for configuration."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"
