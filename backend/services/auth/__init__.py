"""Authentication domain services."""

from .identity_resolution import (
    find_user_by_email,
    normalize_email,
    registration_conflict_exists,
)

__all__ = [
    "normalize_email",
    "find_user_by_email",
    "registration_conflict_exists",
]
