"""
Vegov Constants

This module consolidates the global constants and environment configuration
used throughout the engine. Constants are organized by category for easy
reference and maintenance.
"""
import ast
from decimal import Decimal
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


# WARNING: THE VALUES BELOW ARE DEFAULTS ONLY. A DEPLOYMENT OVERRIDES THEM FROM vegov.toml OR
# VEGOV_* ENVIRONMENT VARIABLES. CHANGING A TIER TABLE AFTER POSITIONS EXIST CHANGES THE WEIGHT
# OF EVERY FUTURE LOCK BUT NEVER OF EXISTING ENTRIES.

# ==================================================================================
# LOCK TIERS
# ==================================================================================
# (duration seconds, vote-token weight) for T1..T4
DEFAULT_TIERS = {
    'T1': (604_800, Decimal('0.25')),     # 1 week
    'T2': (1_209_600, Decimal('0.50')),   # 2 weeks
    'T3': (1_814_400, Decimal('0.75')),   # 3 weeks
    'T4': (2_419_200, Decimal('1.00')),   # 4 weeks
}

VOTE_TOKEN_PREFIX = 'v'


# ==================================================================================
# GOVERNANCE PARAMETERS
# ==================================================================================
DEFAULT_VOTING_PERIOD = 604_800  # 1 week
DEFAULT_UNDELEGATION_PERIOD = 86_400  # 1 day
DEFAULT_MIN_LOCK_AMOUNT = 1
DEFAULT_FOUNDATION_RATIO = Decimal('0')
DEFAULT_ADMIN = 'admin'
DEFAULT_CONFIG_FILE = 'vegov.toml'
ENV_PREFIX = 'VEGOV_'

# Pair ids at or above this offset are liquidity pools (pool id = pair - offset)
POOL_ID_OFFSET = 1_000_000

# Widened precision for Decimal ratio products on 128-bit amounts
DECIMAL_PRECISION = 80


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
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Leaves every other value untouched.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in LOGGER_DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
