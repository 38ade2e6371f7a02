"""
Role normalization and access policy resolution.
"""

from .roles import normalize_role, ROLE_ALIASES
from .policy import AccessPolicyResolver, QueryPredicate, DIRECTORY_ROLES

__all__ = [
    "normalize_role",
    "ROLE_ALIASES",
    "AccessPolicyResolver",
    "QueryPredicate",
    "DIRECTORY_ROLES"
]
