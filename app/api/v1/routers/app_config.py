from fastapi import APIRouter

from app.api.v1.schemas.app_config import IceConfigOut, IceServerOut
from app.api.v1.schemas.base import ApiOut
from app.app_config import get_app_environ_config

router = APIRouter(prefix="/config")


@router.get("/get_ice_config")
async def get_ice_config() -> ApiOut[IceConfigOut]:
    """Get the ICE servers browsers should hand to their peer connection.

    Values come from RELAY_ICE_SERVERS; the relay itself runs no STUN/TURN.

    Example:
    - [{"urls": "stun:stun.l.google.com:19302"}]
    """
    config = get_app_environ_config()

    return ApiOut[IceConfigOut](
        results=IceConfigOut(
            ice_servers=[
                IceServerOut.model_validate(server.model_dump())
                for server in config.RELAY_ICE_SERVERS
            ],
        )
    )
