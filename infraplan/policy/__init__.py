"""Policy rules evaluated over resource graphs before scheduling."""

from .base import PolicyRule, PolicyValidator, PredicateRule
from .rules import (
    ForbiddenSkuRule,
    IdentityAuthRule,
    MandatoryRolesRule,
    MonitoringSinkRule,
    TransportSecurityRule,
    default_rules,
)

__all__ = [
    "ForbiddenSkuRule",
    "IdentityAuthRule",
    "MandatoryRolesRule",
    "MonitoringSinkRule",
    "PolicyRule",
    "PolicyValidator",
    "PredicateRule",
    "TransportSecurityRule",
    "default_rules",
]
