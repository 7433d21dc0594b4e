"""
Deployment-wide immutable parameters for the raffle.

These values define the public rules of the raffle.
Changing them changes how stored state is read and MUST be publicly announced.
"""

# Payout currency (smallest unit). Exactly one per deployment.
PAYOUT_DENOM = "lamports"

# Counter widths
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1

# Host randomness is a fixed-width byte string; only the first 8 bytes are used
RANDOM_SEED_BYTES = 32
RANDOM_INDEX_BYTES = 8

# Identities are raw ed25519 public keys
IDENTITY_BYTES = 32

# Permits must grant this permission to be accepted
PERMIT_PERMISSION = "owner"

# Storage keys. Each lifecycle flag has its own key so new milestones can be
# added later without rewriting existing records.
ADMIN_KEY = "admin"
RAFFLE_KEY = "raffle"
STARTED_KEY = "started"
WINNER_SELECTED_KEY = "winner_selected"
PRIZE_CLAIMED_KEY = "prize_claimed"
WINNER_KEY = "winner"
TOTAL_TICKETS_KEY = "total_tickets"
TICKETS_KEY = "tickets"
REVOKED_PERMITS_PREFIX = "revoked_permits/"
BANK_PREFIX = "bank/"
