"""TradeLedger — groups broker option fills into strategies and attributes P&L."""

__version__ = "1.0.0"
