"""codefacts: incremental tag index and fact sheets for code explanation."""

__version__ = "0.3.0"
