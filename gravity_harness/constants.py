"""
Gravity Harness Constants

This module consolidates the global constants and environment configuration
used by the scenario engine. Constants are organized by category for easy
reference and maintenance.
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
    'LOG_INCLUDE_RESPONSE_CONTENT':    'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_MAX_PATH_LENGTH = 320  # Maximum URL path length to log (truncates longer paths)
LOG_BACKUP_COUNT = 5


# ==================================================================================
# CHAIN IDENTIFIERS
# ==================================================================================
ADDRESS_PREFIX = 'gravity'
VALOPER_SUFFIX = 'valoper'
STAKING_TOKEN = 'stake'
FEE_DENOM = 'footoken'
ERC20_DENOM_PREFIX = 'gravity'  # Cosmos denom of a bridged ERC20 is gravity<contract>

ONE_ETH = 10 ** 18


# ==================================================================================
# TIMING (seconds)
# ==================================================================================
OPERATION_TIMEOUT = 30.0
TOTAL_TIMEOUT = OPERATION_TIMEOUT * 10
POLL_INTERVAL = 10.0

# Halt detection is expected within a handful of blocks
HALT_DEADLINE = 120.0
# A deposit sent to a halted bridge must stay unapplied for this long
HALT_OBSERVATION_WINDOW = 30.0
# Governance voting period latency bounds recovery
RECOVERY_DEADLINE = 10 * 60.0
LIVENESS_DEADLINE = TOTAL_TIMEOUT
POST_RECOVERY_SETTLE = 60.0


# ==================================================================================
# TRANSACTIONS
# ==================================================================================
DEFAULT_FEE_AMOUNT = 1
DEFAULT_GAS_LIMIT = 500_000_000
MEMO = 'Sent using Gravity Harness'

MSG_SEND_TO_COSMOS_CLAIM_URL = '/gravity.v1.MsgSendToCosmosClaim'
PARAMETER_CHANGE_PROPOSAL_URL = '/cosmos.params.v1beta1.ParameterChangeProposal'


# ==================================================================================
# BRIDGE / GOVERNANCE PARAMETERS
# ==================================================================================
GRAVITY_PARAM_SUBSPACE = 'gravity'
PARAM_RESET_BRIDGE_STATE = 'ResetBridgeState'
PARAM_RESET_BRIDGE_NONCE = 'ResetBridgeNonce'

# An attestation is observed once its power exceeds this share (percent) of total power
ATTESTATION_VOTES_POWER_THRESHOLD = 66

# Validator 0 is never faulty and submits the recovery proposal
HONEST_VALIDATOR_INDEX = 0

STARTING_STAKE_PER_VALIDATOR = 1_000_000_000
PROPOSAL_DEPOSIT = 1_000_000_000
# Fraction of validators whose yes vote must finalize for recovery to proceed
GOVERNANCE_VOTE_QUORUM = 0.5

# Cosmos SDK gov defaults
GOVERNANCE_QUORUM = 0.334
GOVERNANCE_THRESHOLD = 0.5
GOVERNANCE_VETO_THRESHOLD = 0.334
GOVERNANCE_VOTING_PERIOD = 60.0


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
DEFAULTS = LOGGER_DEFAULTS
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

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
