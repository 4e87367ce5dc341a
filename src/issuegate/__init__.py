"""issuegate: at-most-once execution coordination for externally triggered jobs."""

__version__ = "0.1.0"
