"""Delegation of certificate capabilities down the workspace tree."""

from .permissions import (
    CAPABILITY_FIELDS,
    DelegationCapability,
    DelegationPermissions,
    parse_capability,
)
from .service import DelegationService

__all__ = [
    "CAPABILITY_FIELDS",
    "DelegationCapability",
    "DelegationPermissions",
    "parse_capability",
    "DelegationService",
]
