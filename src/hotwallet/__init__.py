"""Hot wallet transaction engine for Bitcoin, Ethereum and ERC-20 tokens."""

__version__ = "0.1.0"
