"""pm-assistant - groom tracker ideas into epics and stories."""

__version__ = "0.1.0"
