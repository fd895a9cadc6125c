"""
Fixed protocol constants.

These mirror the values baked into the on-chain reserve manager and are
not mutable at runtime.
"""

# Minimum time between two extractions on the same market (seconds)
COOLDOWN_PERIOD = 24 * 60 * 60

# Ratio is stored as an integer numerator over this denominator (1e18 = 100%)
RATIO_DENOMINATOR = 10**18
DEFAULT_RATIO = RATIO_DENOMINATOR // 2

# Markets whose symbol equals this marker hold the native chain asset
NATIVE_MARKER = "crETH"

# Sentinel identifier standing in for the native asset (wrapped ETH)
NATIVE_ASSET = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"

# Asset every extraction is ultimately converted into (USDC)
TARGET_ASSET = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"

# Upper bound (exclusive) for on-chain unsigned integers
UINT256_MAX = 2**256 - 1
