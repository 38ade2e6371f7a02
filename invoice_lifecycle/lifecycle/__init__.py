"""
Invoice lifecycle: the status state machine and the audit recorder.
"""

from .audit import AuditRecorder, Provenance, StatusChange
from .state_machine import (
    InvoiceStateMachine, TransitionOutcome, LEGAL_TRANSITIONS, MATCHING_ELIGIBLE,
    TERMINAL_STATUSES, MATCH_SUCCESS_NOTE, requires_matching, is_legal_transition,
    matching_note
)

__all__ = [
    "AuditRecorder",
    "Provenance",
    "StatusChange",
    "InvoiceStateMachine",
    "TransitionOutcome",
    "LEGAL_TRANSITIONS",
    "MATCHING_ELIGIBLE",
    "TERMINAL_STATUSES",
    "MATCH_SUCCESS_NOTE",
    "requires_matching",
    "is_legal_transition",
    "matching_note"
]
