"""CryptoVault Core: technical-analysis and trade-setup engine for crypto markets."""

__version__ = "0.1.0"
