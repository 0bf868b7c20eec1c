"""ZeroMoney: claim-gated token ledger with era-halved dividend emission."""

__version__ = "0.1.0"
