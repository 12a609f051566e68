"""Identity graph resolution.

Given an observed (email, phone) pair, find the identity group it belongs to,
merge groups the observation bridges, and record any genuinely new value as a
secondary contact. Groups are stars: one primary, every other member's
``linked_id`` pointing straight at it.

Example:
    >>> async with get_db(session_factory) as session:
    ...     resolver = IdentityResolver(ContactStore(session))
    ...     resolution = await resolver.resolve("mcfly@hillvalley.edu", "123456")
    ...     print(resolution.primary.id, [c.id for c in resolution.contacts])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol

from db.models import Contact, LinkPrecedence
from identity.errors import InconsistentState, InvalidRequest, StoreError

logger = logging.getLogger(__name__)

# Bounds the lock/re-read loop; each round only runs when a concurrent merge
# moved the group between our read and our lock.
MAX_LOCK_ROUNDS = 8


class ContactGateway(Protocol):
    """Operations the resolver needs from the contact store.

    Every read excludes soft-deleted contacts. Failures raise StoreError.
    """

    async def find_by_email_or_phone(
        self, email: Optional[str], phone: Optional[str]
    ) -> list[Contact]: ...

    async def find_by_id(self, contact_id: int) -> Optional[Contact]: ...

    async def find_secondaries_of(self, primary_id: int) -> list[Contact]: ...

    async def insert(
        self,
        email: Optional[str],
        phone: Optional[str],
        linked_id: Optional[int],
        link_precedence: LinkPrecedence,
    ) -> Contact: ...

    async def demote_to_secondary(self, contact_id: int, new_primary_id: int) -> None: ...

    async def relink_secondaries(self, old_primary_id: int, new_primary_id: int) -> int: ...

    async def lock_keys(self, keys: Iterable[str]) -> None: ...


@dataclass
class Resolution:
    """Outcome of one resolve() call."""

    primary: Contact
    contacts: list[Contact]
    created_ids: list[int] = field(default_factory=list)
    demoted_ids: list[int] = field(default_factory=list)
    anomalies: list[InconsistentState] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_ids or self.demoted_ids)


def value_lock_keys(email: Optional[str], phone: Optional[str]) -> list[str]:
    keys = []
    if email is not None:
        keys.append(f"email:{email}")
    if phone is not None:
        keys.append(f"phone:{phone}")
    return keys


def contact_lock_key(contact_id: int) -> str:
    return f"contact:{contact_id}"


def _precedence_order(contact: Contact) -> tuple:
    return (contact.created_at, contact.id)


class IdentityResolver:
    """Resolve observations against the identity graph held by a ContactGateway.

    The gateway must be bound to a single transaction: the advisory locks taken
    here are only released when that transaction ends, and all mutations made by
    one resolve() call rely on them.
    """

    def __init__(self, store: ContactGateway) -> None:
        self._store = store

    async def resolve(self, email: Optional[str], phone: Optional[str]) -> Resolution:
        """Resolve one observation to its identity group.

        Args:
            email: Observed email, already validated and normalized, or None.
            phone: Observed phone number, already validated, or None.

        Returns:
            Resolution with the surviving primary and every live group member.

        Raises:
            InvalidRequest: Both email and phone are None.
            StoreError: Any store read or write failed. Nothing is retried.
        """
        if email is None and phone is None:
            raise InvalidRequest()

        anomalies: list[InconsistentState] = []
        await self._store.lock_keys(value_lock_keys(email, phone))

        group = await self._lock_group(email, phone, anomalies)
        if not group:
            contact = await self._store.insert(email, phone, None, LinkPrecedence.PRIMARY)
            logger.info("Created primary contact id=%s", contact.id)
            return Resolution(
                primary=contact,
                contacts=[contact],
                created_ids=[contact.id],
                anomalies=anomalies,
            )

        primaries = sorted(
            (c for c in group.values() if c.is_primary), key=_precedence_order
        )
        survivor = primaries[0]
        resolution = Resolution(primary=survivor, contacts=[], anomalies=anomalies)

        if len(primaries) > 1:
            for demoted in primaries[1:]:
                logger.info(
                    "Demoting primary id=%s to secondary of id=%s",
                    demoted.id,
                    survivor.id,
                )
                await self._store.relink_secondaries(demoted.id, survivor.id)
                await self._store.demote_to_secondary(demoted.id, survivor.id)
                resolution.demoted_ids.append(demoted.id)

            group = await self._expand([survivor], anomalies)
            refreshed = await self._store.find_by_id(survivor.id)
            if refreshed is not None:
                survivor = refreshed
                group[survivor.id] = survivor
            resolution.primary = survivor

        emails = {c.email for c in group.values() if c.email is not None}
        phones = {c.phone_number for c in group.values() if c.phone_number is not None}
        has_new_email = email is not None and email not in emails
        has_new_phone = phone is not None and phone not in phones

        if has_new_email or has_new_phone:
            secondary = await self._store.insert(
                email, phone, survivor.id, LinkPrecedence.SECONDARY
            )
            logger.info(
                "Created secondary contact id=%s linked to primary id=%s",
                secondary.id,
                survivor.id,
            )
            group[secondary.id] = secondary
            resolution.created_ids.append(secondary.id)

        resolution.contacts = sorted(group.values(), key=lambda c: c.id)
        return resolution

    async def _lock_group(
        self,
        email: Optional[str],
        phone: Optional[str],
        anomalies: list[InconsistentState],
    ) -> dict[int, Contact]:
        """Match and expand, locking every primary found, until the group is stable.

        Returns an empty dict when nothing live matches.
        """
        locked: set[int] = set()
        for _ in range(MAX_LOCK_ROUNDS):
            round_anomalies: list[InconsistentState] = []
            matched = await self._store.find_by_email_or_phone(email, phone)
            group = await self._expand(matched, round_anomalies) if matched else {}
            pending = {c.id for c in group.values() if c.is_primary} - locked
            if not pending:
                anomalies.extend(round_anomalies)
                return group
            await self._store.lock_keys(contact_lock_key(i) for i in pending)
            locked |= pending
        raise StoreError(
            "lock_keys",
            f"identity group for email={email!r} phone={phone!r} "
            f"did not stabilize after {MAX_LOCK_ROUNDS} lock rounds"
        )

    async def _expand(
        self, seeds: list[Contact], anomalies: list[InconsistentState]
    ) -> dict[int, Contact]:
        """Close a set of contacts over the primary/secondary links.

        Secondaries whose link is dangling or points at another secondary are
        dropped from the result and reported in anomalies.
        """
        group: dict[int, Contact] = {c.id: c for c in seeds}

        for contact in seeds:
            if not contact.is_secondary:
                continue
            parent = group.get(contact.linked_id) if contact.linked_id is not None else None
            if parent is None and contact.linked_id is not None:
                parent = await self._store.find_by_id(contact.linked_id)
            if parent is None:
                self._flag(anomalies, contact, "linked contact not found")
                group.pop(contact.id, None)
            elif not parent.is_primary:
                self._flag(anomalies, contact, "linked contact is not a primary")
                group.pop(contact.id, None)
            else:
                group[parent.id] = parent

        for primary in [c for c in group.values() if c.is_primary]:
            for secondary in await self._store.find_secondaries_of(primary.id):
                group[secondary.id] = secondary

        return group

    @staticmethod
    def _flag(
        anomalies: list[InconsistentState], contact: Contact, reason: str
    ) -> None:
        anomalies.append(InconsistentState(contact.id, contact.linked_id, reason))
