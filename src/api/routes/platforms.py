"""FastAPI routes for the user's platform connections.

Connections are registered with manually issued credentials (Shopify
admin token, WooCommerce key pair, ...). Credentials are encrypted before
they are stored and are never returned.
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_platform_service
from src.api.middleware.auth import get_current_user_id
from src.api.schemas import Envelope, PlatformRegisterRequest, PlatformResponse
from src.services.platform_service import PlatformService

router = APIRouter(prefix="/platforms", tags=["platforms"])


@router.get("", response_model=Envelope)
def list_platforms(
    user_id: str = Depends(get_current_user_id),
    service: PlatformService = Depends(get_platform_service),
) -> Envelope:
    rows = service.list_connected(user_id)
    return Envelope(data=[
        PlatformResponse.model_validate(row).model_dump() for row in rows
    ])


@router.post("", response_model=Envelope, status_code=201)
def register_platform(
    payload: PlatformRegisterRequest,
    user_id: str = Depends(get_current_user_id),
    service: PlatformService = Depends(get_platform_service),
) -> Envelope:
    """Register a platform connection for the user."""
    row = service.register_platform(
        user_id,
        payload.platform_type.value,
        payload.shop_name,
        payload.credentials,
        shop_domain=payload.shop_domain,
        store_url=payload.store_url,
    )
    return Envelope(data=PlatformResponse.model_validate(row).model_dump())
