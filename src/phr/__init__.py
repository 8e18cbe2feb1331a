"""Private Health Risk: encrypted vital-sign submission to an on-chain ledger."""

__version__ = "0.1.0"
