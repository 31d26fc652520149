"""dumpguard - guarded database dump export, transfer and import."""

__version__ = "0.1.0"
