"""Certificate capabilities an ancestor workspace can delegate.

Capabilities are a closed set; a grant is a bundle of boolean flags, one per
capability. Re-granting replaces the whole bundle.
"""

from enum import Enum
from typing import FrozenSet, Union

from pydantic import BaseModel, ConfigDict


class DelegationCapability(str, Enum):
    """Certificate actions a descendant workspace can be allowed to perform."""

    DESIGN_TEMPLATES = "design_templates"   # Build certificate templates
    DEFINE_CRITERIA = "define_criteria"     # Decide who earns a certificate
    GENERATE = "generate"                   # Produce certificates
    DISTRIBUTE = "distribute"               # Send them to recipients


# Column / field name for each capability
CAPABILITY_FIELDS = {
    DelegationCapability.DESIGN_TEMPLATES: "can_design_templates",
    DelegationCapability.DEFINE_CRITERIA: "can_define_criteria",
    DelegationCapability.GENERATE: "can_generate",
    DelegationCapability.DISTRIBUTE: "can_distribute",
}


class DelegationPermissions(BaseModel):
    """The permission bundle carried by one delegation grant."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    can_design_templates: bool = False
    can_define_criteria: bool = False
    can_generate: bool = False
    can_distribute: bool = False

    @classmethod
    def of(cls, *capabilities: Union[DelegationCapability, str]) -> "DelegationPermissions":
        """Build a bundle granting exactly ``capabilities``."""
        fields = {CAPABILITY_FIELDS[parse_capability(c)]: True for c in capabilities}
        return cls(**fields)

    @classmethod
    def from_grant(cls, grant) -> "DelegationPermissions":
        return cls(**{name: bool(getattr(grant, name)) for name in CAPABILITY_FIELDS.values()})

    @property
    def granted(self) -> FrozenSet[DelegationCapability]:
        return frozenset(cap for cap, name in CAPABILITY_FIELDS.items() if getattr(self, name))

    def any_granted(self) -> bool:
        return bool(self.granted)

    def allows(self, capability: Union[DelegationCapability, str]) -> bool:
        return getattr(self, CAPABILITY_FIELDS[parse_capability(capability)])


def parse_capability(value: Union[DelegationCapability, str]) -> DelegationCapability:
    """Parse a capability such as 'generate' or 'can_generate'."""
    if isinstance(value, DelegationCapability):
        return value
    name = str(value).strip().lower()
    if name.startswith("can_"):
        name = name[len("can_"):]
    try:
        return DelegationCapability(name)
    except ValueError:
        raise ValueError(f"Unknown delegation capability: {value}") from None
