"""Pay-per-prompt AI gateway settled in Stellar lumens."""

__version__ = "0.1.0"
