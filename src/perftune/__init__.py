"""perftune - declarative, reversible system tuning."""

__version__ = "0.3.0"
