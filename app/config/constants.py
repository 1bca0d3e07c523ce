"""
Application constants.

Centralized defaults for the payment pipeline and membership jobs.
Runtime values are taken from Settings; these are the fallbacks.
"""

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# Blockchain operation timeouts (in seconds)
BLOCKCHAIN_EXECUTOR_TIMEOUT = 20.0  # Timeout for run_in_executor operations
BLOCKCHAIN_RPC_TIMEOUT = 30  # RPC provider HTTP timeout

# Chain scanning windows (in blocks)
SCAN_FALLBACK_BLOCKS = 5000  # Window used when no cursor exists yet
SCAN_MAX_BLOCKS = 2000  # Maximum blocks per scan invocation
SCAN_BLOCK_CHUNK_DIVISOR = 5  # Block chunk = max(1, SCAN_MAX_BLOCKS // divisor)
SCAN_ADDRESS_CHUNK_SIZE = 5  # Recipient topics per eth_getLogs filter

# Stablecoin
USDT_DECIMALS = 6

# ========================================================================
# SWEEP CONSTANTS
# ========================================================================

SWEEP_REQUEST_TIMEOUT_SECONDS = 60
SWEEP_BATCH_SIZE = 10
SWEEP_MAX_RETRIES = 3
SWEEP_BASE_DELAY_SECONDS = 5  # 5s, 10s, 20s...
SWEEP_BACKOFF_MULTIPLIER = 2
SWEEP_MAX_DELAY_SECONDS = 3600  # Cap at one hour
SWEEP_RECORD_ATTEMPTS = 3  # Local DB write attempts after a successful sweep
SWEEP_RECORD_RETRY_DELAY_SECONDS = 1  # Linear: 1s, 2s
RESERVE_API_KEY_HEADER = "x-reserve-key"

# ========================================================================
# SETTLEMENT CONSTANTS
# ========================================================================

APPLY_BATCH_SIZE = 10

# ========================================================================
# MEMBERSHIP CONSTANTS
# ========================================================================

MEMBERSHIP_DELETION_GRACE_DAYS = 7
MEMBERSHIP_EXPIRE_INTERVAL_MINUTES = 10
MEMBERSHIP_COMPRESS_INTERVAL_MINUTES = 60

# Membership event reasons
EVENT_REASON_PAYMENT_CONFIRMED = "payment_confirmed"
EVENT_REASON_MANUAL = "manual_credit"
EVENT_REASON_EXPIRED = "expired"
EVENT_REASON_COMPRESSED = "compressed"

# ========================================================================
# SCHEDULER CONSTANTS
# ========================================================================

PAYMENTS_SCAN_INTERVAL_SECONDS = 60
PIPELINE_TIME_LIMIT_MS = 300_000  # 5 min
MAINTENANCE_TIME_LIMIT_MS = 600_000  # 10 min

# Dramatiq retry policy for failed ticks
TASK_MAX_RETRIES = 3
TASK_MIN_BACKOFF_MS = 1_000
TASK_MAX_BACKOFF_MS = 60_000
