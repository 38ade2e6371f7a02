"""
Role canonicalization.

Persisted role values arrive in several legacy spellings ("Admin", "PM",
"Finance User", "vendor", ...). Every role comparison in the package goes
through normalize_role so that no caller does its own case folding.
"""

import re
from typing import Any, Optional

from invoice_lifecycle.models import Role

import logging
logger = logging.getLogger(__name__)


ROLE_ALIASES = {
    'admin': Role.ADMIN,
    'administrator': Role.ADMIN,
    'pm': Role.PROJECT_MANAGER,
    'project_manager': Role.PROJECT_MANAGER,
    'projectmanager': Role.PROJECT_MANAGER,
    'finance': Role.FINANCE_USER,
    'finance_user': Role.FINANCE_USER,
    'financeuser': Role.FINANCE_USER,
    'vendor': Role.VENDOR,
}


def normalize_role(raw: Any) -> Optional[Role]:
    """
    Map a stored role value to its canonical Role.

    Args:
        raw: Role string in any legacy spelling, or a Role

    Returns:
        The canonical Role, or None when the value is missing or unknown
    """
    if isinstance(raw, Role):
        return raw
    if raw is None:
        return None

    key = re.sub(r'[\s\-_]+', '_', str(raw).strip().lower())
    role = ROLE_ALIASES.get(key)
    if role is None:
        logger.warning(f"Unrecognized role value: {raw!r}")
    return role
