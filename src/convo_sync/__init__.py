"""Cross-device replication of conversation session logs."""

__version__ = "0.4.0"
