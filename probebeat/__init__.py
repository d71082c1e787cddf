"""probebeat — periodic protocol probes turned into scoring events."""

__version__ = "0.3.0"
