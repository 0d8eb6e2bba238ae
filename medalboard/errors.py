"""
Exceptions raised by the medal board core.

Guard rejections (duplicate names, referential delete conflicts) are not
exceptions: the store reports them as ``None`` or ``False``.
"""

from typing import Dict, List


class MedalBoardError(Exception):
    """Base class for medal board failures."""


class SettingsMissingError(MedalBoardError):
    """The score settings singleton is required but could not be loaded."""

    def __init__(self) -> None:
        super().__init__("Score settings not initialized")


class ValidationError(MedalBoardError):
    """Request payload failed boundary validation."""

    def __init__(
        self,
        errors: List[Dict[str, str]],
    ) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{e['field']}: {e['message']}" for e in errors))
