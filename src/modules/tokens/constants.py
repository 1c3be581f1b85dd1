"""Token allocator constants."""

DEFAULT_TOKEN_PREFIX = "T"

# Zero-padding of the daily sequence number: T-001, T-002, ... T-999, T-1000
SEQUENCE_WIDTH = 3

SYNTHETIC_TOKEN_MAX_RETRIES = 5

TOKEN_MAX_LENGTH = 32
