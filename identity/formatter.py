"""Project a resolved identity group into its consolidated view."""
from typing import Iterable, List, Optional

from db.models import Contact
from schemas.identify import ConsolidatedIdentity


def _append_unique(values: List[str], value: Optional[str]) -> None:
    if value is not None and value not in values:
        values.append(value)


def project(primary: Contact, group: Iterable[Contact]) -> ConsolidatedIdentity:
    """Build the consolidated identity for a group rooted at primary.

    The primary's email and phone come first; every other member contributes
    in ascending id order, each distinct value once.
    """
    emails: List[str] = []
    phone_numbers: List[str] = []
    secondary_ids: List[int] = []

    _append_unique(emails, primary.email)
    _append_unique(phone_numbers, primary.phone_number)

    for contact in sorted(group, key=lambda c: c.id):
        if contact.id == primary.id:
            continue
        secondary_ids.append(contact.id)
        _append_unique(emails, contact.email)
        _append_unique(phone_numbers, contact.phone_number)

    return ConsolidatedIdentity(
        primary_contact_id=primary.id,
        emails=emails,
        phone_numbers=phone_numbers,
        secondary_contact_ids=secondary_ids,
    )
