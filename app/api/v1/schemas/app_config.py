from pydantic import BaseModel


class IceServerOut(BaseModel):
    urls: str | list[str]
    username: str | None = None
    credential: str | None = None


class IceConfigOut(BaseModel):
    ice_servers: list[IceServerOut]
