"""Course portal entitlement and competency evidence engine."""

__version__ = "0.1.0"
