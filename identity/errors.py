"""Exceptions raised by identity resolution."""

from __future__ import annotations

from typing import Optional


class IdentityError(Exception):
    """Base exception for identity resolution errors."""

    pass


class InvalidRequest(IdentityError):
    """Raised when an observation carries neither an email nor a phone number."""

    def __init__(self, reason: str = "email or phoneNumber is required") -> None:
        self.reason = reason
        super().__init__(reason)


class StoreError(IdentityError):
    """Raised when a read or write against the contact store fails.

    Attributes:
        operation: Gateway operation that failed (e.g. ``"demote_to_secondary"``).
        detail: Driver-level error text. Never shown to clients in production.
    """

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class InconsistentState(IdentityError):
    """A secondary whose ``linked_id`` does not lead to a live primary.

    Collected on the resolution result and logged; not raised out of resolve().
    """

    def __init__(
        self, contact_id: int, linked_id: Optional[int], reason: str
    ) -> None:
        self.contact_id = contact_id
        self.linked_id = linked_id
        self.reason = reason
        super().__init__(
            f"contact {contact_id} links to {linked_id}: {reason}"
        )
