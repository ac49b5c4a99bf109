from enum import Enum


class RebalanceStatus(str, Enum):
    """
    Terminal status of one executor attempt, as written to the audit trail.
    """
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class JobStatus(str, Enum):
    PENDING = "PENDING"       # waiting for run_at (fresh or backing off)
    ACTIVE = "ACTIVE"         # claimed by a consumer, lease running
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"         # all attempts spent


class JobPriority(int, Enum):
    """
    Numeric queue priority. Lower number = claimed first.
    """
    HIGH = 1
    MEDIUM = 5
    LOW = 10


class JobOutcome(str, Enum):
    IDLE = "IDLE"
    COMPLETED = "COMPLETED"
    RETRY_SCHEDULED = "RETRY_SCHEDULED"
    EXHAUSTED = "EXHAUSTED"


class ExecutionState(str, Enum):
    """
    Executor state machine for a single job attempt.
    """
    LOADED = "LOADED"
    EVALUATED = "EVALUATED"
    GAS_CHECKED = "GAS_CHECKED"
    QUOTED = "QUOTED"
    BUILT = "BUILT"
    SIMULATED = "SIMULATED"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class VenuePolicy(str, Enum):
    BEST = "best"           # query every venue concurrently, keep the best
    FALLBACK = "fallback"   # primary venue first, next one on null/error


class MevMode(str, Enum):
    PRIVATE_RELAY = "PRIVATE_RELAY"
    INTENT = "INTENT"
    RANDOM_DELAY = "RANDOM_DELAY"


class IntentStatus(str, Enum):
    PENDING = "PENDING"
    EXECUTING = "EXECUTING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
