# src/zeromoney/ledger/constants.py
from __future__ import annotations

"""ZeroMoney monetary constants.

- 18 decimals; one claim mints exactly one whole token
- Emission halves every 21 days and stops after era 60
- Dividend rate is fixed-point, scaled by 2**128
"""

# Token metadata
TOKEN_NAME: str = "Zero Money"
TOKEN_SYMBOL: str = "ZERO"
TOKEN_DECIMALS: int = 18

# 1 ZERO = 1e18 base units
ONE_ZERO: int = 10**TOKEN_DECIMALS

# Minted to the claimant on every successful claim
CLAIM_AMOUNT: int = ONE_ZERO

# Fixed-point scale for dividend_per_share_magnified and corrections
MAGNITUDE: int = 2**128

# Emission schedule
HALVING_PERIOD: int = 21 * 24 * 60 * 60  # 21 days, seconds
FINAL_ERA: int = 60

# Era reported before start (uint256 max)
UNBOUNDED_ERA: int = 2**256 - 1

# Claim identifiers are 256-bit; zero is reserved as invalid
MAX_IDENTIFIER: int = 2**256 - 1

# Ledger-owned account that receives freshly emitted dividend tokens
POOL_ACCOUNT_ID: str = "POOL"
