from .identify import (
    IdentifyRequest,
    ConsolidatedIdentity,
    IdentifyResponse,
    ErrorResponse,
)

__all__ = [
    "IdentifyRequest", "ConsolidatedIdentity", "IdentifyResponse", "ErrorResponse",
]
