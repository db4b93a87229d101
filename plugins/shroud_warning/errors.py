"""
plugins/shroud_warning/errors.py

Shroud warning exceptions.
"""


class ShroudWarningError(Exception):
    """Base exception for shroud warning errors."""
    pass


class HostUnavailableError(ShroudWarningError):
    """Game bridge did not answer at plugin load."""
    pass


class ConfigKeyError(ShroudWarningError):
    """Setting name not recognised by the config command."""
    pass
