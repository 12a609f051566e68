"""Identity graph resolution for contact records."""
from identity.errors import IdentityError, InconsistentState, InvalidRequest, StoreError
from identity.formatter import project
from identity.resolver import ContactGateway, IdentityResolver, Resolution

__all__ = [
    "IdentityError", "InconsistentState", "InvalidRequest", "StoreError",
    "project",
    "ContactGateway", "IdentityResolver", "Resolution",
]
