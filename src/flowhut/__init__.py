"""flowhut - workflow server client with a local job ledger."""

__version__ = "0.3.0"
