"""Identity reconciliation endpoint."""
import logging

from fastapi import APIRouter, Depends, Request

from identity.errors import InvalidRequest
from identity.service import IdentityService
from schemas.identify import ErrorResponse, IdentifyRequest, IdentifyResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["identify"])


def get_identity_service(request: Request) -> IdentityService:
    """Service bound to the session factory created in the app lifespan."""
    return IdentityService(request.app.state.session_factory)


@router.post(
    "/identify",
    response_model=IdentifyResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def identify(
    body: IdentifyRequest,
    service: IdentityService = Depends(get_identity_service),
) -> IdentifyResponse:
    """Resolve an (email, phoneNumber) observation to its consolidated identity."""
    if not body.has_identifier():
        raise InvalidRequest()
    contact = await service.identify(body.email, body.phone_number)
    return IdentifyResponse(contact=contact)
