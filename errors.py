"""
errors.py
Error taxonomy shared by every engine module.
"""

from __future__ import annotations


class GymError(Exception):
    """Base class for engine errors surfaced to the operator."""


class ValidationError(GymError):
    """
    Bad input, rejected before any write.
    `errors` maps a field name to the reason it was rejected.
    """

    def __init__(self, errors: dict[str, str] | str, field: str = "__all__"):
        if isinstance(errors, str):
            errors = {field: errors}
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class ConflictError(GymError):
    """The write would break uniqueness or an existing reference."""


class NotFoundError(GymError):
    """A referenced client, plan, period or payment does not exist."""
