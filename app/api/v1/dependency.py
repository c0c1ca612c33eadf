from fastapi.requests import HTTPConnection

from app.domain.relay import RelayRegistry


def get_relay_registry(conn: HTTPConnection) -> RelayRegistry:
    """Registry created in the application lifespan; shared by HTTP and WebSocket routes."""
    return conn.app.state.relay_registry
