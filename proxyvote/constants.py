"""
ProxyVote Constants

This module consolidates the global constants and environment configuration
used throughout the governance engine. Constants are organized by category
for easy reference and maintenance.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW DEFINE GOVERNANCE SEMANTICS. CHANGING THEM ON A LIVE
# DEPLOYMENT ALTERS WHICH PROPOSALS PASS AND WHEN THEY MAY EXECUTE. OVERRIDE THEM
# THROUGH config.toml (see proxyvote.config) RATHER THAN EDITING THIS FILE.

# ==================================================================================
# PROPOSAL LIFECYCLE
# ==================================================================================
PASS_THRESHOLD = 100  # Absolute floor on votes_for; no majority comparison
TIMELOCK_PERIOD = 144  # Blocks between proposal creation and earliest execution
MAX_TITLE_LENGTH = 50
MAX_CATEGORY_LENGTH = 20
MAX_TAGS = 5
MAX_TAG_LENGTH = 15


# ==================================================================================
# VOTING WEIGHTS
# ==================================================================================
DEFAULT_WEIGHT = 1  # Power of an account that is neither member nor overridden
MAX_CUSTOM_WEIGHT = 1000
MAX_TIER_NAME_LENGTH = 32


# ==================================================================================
# TOKEN LOCKUPS
# ==================================================================================
BLOCKS_PER_DAY = 144  # ~10 minute blocks
MIN_LOCK_DAYS = 7
MAX_LOCK_DAYS = 365
MIN_LOCK_MULTIPLIER_BPS = 100  # 1.00x
MAX_LOCK_MULTIPLIER_BPS = 300  # 3.00x
LOCK_MULTIPLIER_DIVISOR = 100
ALLOW_SNAPSHOT_OVERWRITE = True

# Account that holds locked tokens while a lockup is active
CUSTODY_ACCOUNT = "proxyvote.token-voting"


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = dict(LOGGER_DEFAULTS)
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        # ast.literal_eval expects "True"/"False"
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    # Parses only boolean-literals. Leaves other values untouched.
    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        # Preserves the original raw string for ConfigString storage.
        namespace[key] = ConfigString(value_raw, default_val)
