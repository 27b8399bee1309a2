"""Car Park Ledger: console-driven car park slot allocation and billing."""

__version__ = "1.0.0"
