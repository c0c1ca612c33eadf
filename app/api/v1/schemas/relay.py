from pydantic import BaseModel


class RelayStatusOut(BaseModel):
    has_streamer: bool
    streamer_id: str | None
    viewer_count: int
    viewer_ids: list[str]
