"""
Constants and configuration values for the Sprint Engine
Values are loaded from config file with fallback defaults
"""
import os
try:
    import tomllib
except ImportError:
    import tomli as tomllib

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Load config file
CONFIG_PATH = os.environ.get(
    "SPRINT_ENGINE_CONFIG",
    os.path.join(PROJECT_ROOT, 'config', 'sprint_engine.toml'),
)


def _load_config(path: str = None) -> dict:
    """Load configuration from TOML file"""
    try:
        with open(path or CONFIG_PATH, 'rb') as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return {}


_config = _load_config()

# Sprint States (reported by the backend, never computed here)
SPRINT_STATE_PENDING = "pending"
SPRINT_STATE_ACTIVE = "active"
SPRINT_STATE_OVERDUE = "overdue"
SPRINT_STATE_COMPLETE = "complete"

SPRINT_STATES = [
    SPRINT_STATE_PENDING,
    SPRINT_STATE_ACTIVE,
    SPRINT_STATE_OVERDUE,
    SPRINT_STATE_COMPLETE,
]

# States that count as "running" when resolving the `active` keyword
RUNNING_STATES = [SPRINT_STATE_ACTIVE, SPRINT_STATE_OVERDUE]

# Membership Configuration (from config with fallbacks)
_membership = _config.get('membership', {})
FORCE_SINGLE_DEFAULT = _membership.get('force_single_default', True)
ALLOW_CLOSED_DEFAULT = _membership.get('allow_closed_default', False)
CLOSED_STATES = _membership.get('closed_states', [SPRINT_STATE_COMPLETE])

# Membership actions
ACTION_ADD = "add"
ACTION_REMOVE = "remove"

# Rejection reason codes
REASON_SPRINT_CLOSED = "sprint_closed"

# Sprint reference keywords
SPRINT_KEYWORD_ACTIVE = "active"
SPRINT_KEYWORD_NEXT = "next"
SPRINT_KEYWORD_PREVIOUS = ("previous", "prev")

# Calendar Configuration (from config with fallbacks)
_calendar = _config.get('calendar', {})
CALENDAR_WEEK_START_WEEKDAY = _calendar.get('week_start_weekday', 0)  # Monday
CALENDAR_TIMEZONE = _calendar.get('timezone', '') or None
DATE_KEY_FORMAT = '%Y-%m-%d'

# Analytics Configuration (from config with fallbacks)
_analytics = _config.get('analytics', {})
VELOCITY_METRICS = ['tasks', 'points', 'hours']
DEFAULT_VELOCITY_LIMIT = _analytics.get('velocity_limit', 8)
DEFAULT_VELOCITY_INCLUDE_ACTIVE = _analytics.get('velocity_include_active', True)
DEFAULT_VELOCITY_METRIC = _analytics.get('velocity_metric', 'points')

# Event kinds delivered by the live channel
EVENT_SPRINT_CREATED = "sprint_created"
EVENT_SPRINT_UPDATED = "sprint_updated"
EVENT_SPRINT_DELETED = "sprint_deleted"
EVENT_TASK_UPDATED = "task_updated"
EVENT_TASK_DELETED = "task_deleted"
