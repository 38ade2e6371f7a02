"""
Audit trail recording.

Builds the immutable AuditEntry written alongside every invoice status change,
including the request provenance (originating address, client descriptor).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Optional

from invoice_lifecycle.models import (
    Actor, AuditAction, AuditEntry, Invoice, InvoiceStatus, utc_now
)

import logging
logger = logging.getLogger(__name__)


SYSTEM_ACTOR_NAME = "System"
SYSTEM_ROLE = "SYSTEM"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class Provenance:
    """Where a request came from."""
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> 'Provenance':
        """
        Extract provenance from request headers.

        Call this first thing in a request handler: proxies are not guaranteed
        to keep forwarding headers available once other awaits have run.
        The originating address is the first hop of X-Forwarded-For, then
        X-Real-IP.
        """
        lowered = {str(key).lower(): value for key, value in headers.items()}

        forwarded = lowered.get('x-forwarded-for', '')
        ip_address = forwarded.split(',')[0].strip() if forwarded else ''
        if not ip_address:
            ip_address = (lowered.get('x-real-ip') or '').strip()

        return cls(
            ip_address=ip_address or UNKNOWN,
            user_agent=lowered.get('user-agent') or UNKNOWN
        )


@dataclass(frozen=True)
class StatusChange:
    """A resolved status change awaiting its audit entry."""
    previous_status: InvoiceStatus
    new_status: InvoiceStatus
    action: AuditAction
    notes: str


class AuditRecorder:
    """
    Creates audit entries.

    Given the same invoice, change, actor, provenance and clock reading, the
    recorder always produces the same entry.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.logger = logging.getLogger(f"{__name__}.AuditRecorder")

    def record(self, invoice: Invoice, change: StatusChange, actor: Optional[Actor],
               provenance: Optional[Provenance] = None) -> AuditEntry:
        """
        Build the audit entry for a status change.

        Args:
            invoice: Invoice being changed
            change: Previous/new status, action tag and notes
            actor: Caller; None records a system action
            provenance: Request origin, if the change came from a request

        Returns:
            The new AuditEntry
        """
        provenance = provenance or Provenance()
        if actor is None:
            name, actor_id, role = SYSTEM_ACTOR_NAME, None, SYSTEM_ROLE
        else:
            name = actor.display_name
            actor_id = actor.id
            role = actor.role.value if actor.role else UNKNOWN.upper()

        entry = AuditEntry(
            action=change.action.value,
            actor=name,
            actor_id=actor_id,
            actor_role=role,
            timestamp=self.clock(),
            previous_status=change.previous_status.value,
            new_status=change.new_status.value,
            notes=change.notes,
            ip_address=provenance.ip_address,
            user_agent=provenance.user_agent
        )
        self.logger.info(f"Audit {entry.action} on {invoice.id}: {entry.previous_status} -> "
                         f"{entry.new_status} by {entry.actor} ({entry.actor_role})")
        return entry
