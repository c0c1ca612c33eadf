"""Read-only view of the signaling relay."""

from fastapi import APIRouter, Depends

from app.api.v1.dependency import get_relay_registry
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.relay import RelayStatusOut
from app.domain.relay import RelayRegistry

router = APIRouter(prefix="/relay")


@router.get("/status")
async def get_relay_status(
    registry: RelayRegistry = Depends(get_relay_registry),
) -> ApiOut[RelayStatusOut]:
    """Whether a streamer is registered and which viewers are connected."""
    status = registry.snapshot()

    return ApiOut[RelayStatusOut](results=RelayStatusOut.model_validate(status.model_dump()))
