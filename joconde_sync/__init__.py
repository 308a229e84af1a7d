"""joconde-sync: streaming import of the Joconde museum catalog."""

__version__ = "0.1.0"
