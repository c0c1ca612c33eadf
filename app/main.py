import time
import traceback
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.errors import app_error_handler
from app.api.v1.routers.signaling import signaling
from app.app_config import get_app_environ_config
from app.domain.relay import RelayRegistry
from app.shared.api.errors import E_INTERNAL
from app.shared.api.utils import api_failure, init_logger, load_routes, validation_exception_handler
from app.utils.app_errors import AppError


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=E_INTERNAL,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


def mount_static_frontend(server: FastAPI, static_dir: str | None) -> bool:
    """Serve the built frontend at "/" after all API routes."""
    if not static_dir:
        return False

    path = Path(static_dir)
    if not path.is_dir():
        logger.warning("STATIC_DIR {} does not exist, frontend not served", path)
        return False

    server.mount("/", StaticFiles(directory=path, html=True), name="frontend")
    logger.info("Serving frontend from {}", path)
    return True


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    config = get_app_environ_config()

    logger.info("Application startup...")

    if config.API_WORKERS != 1:
        logger.warning(
            "API_WORKERS={} but relay state is per process; viewers and streamer "
            "must land on the same worker",
            config.API_WORKERS,
        )

    server.state.relay_registry = RelayRegistry(validation_mode=config.RELAY_VALIDATION_MODE)
    logger.info("Relay registry ready (validation mode: {})", config.RELAY_VALIDATION_MODE)

    # Lifespan may run more than once per app object (tests); routes are added once.
    if not getattr(server.state, "routes_loaded", False):
        load_routes(server, "/api/v1")

        # Browser clients connect to the bare host.
        server.add_api_websocket_route("/", signaling, name="signaling_root")

        mount_static_frontend(server, config.STATIC_DIR)
        server.state.routes_loaded = True

    yield

    logger.info("Application shutdown...")

    registry: RelayRegistry = server.state.relay_registry
    status = registry.snapshot()
    logger.info(
        "Dropping relay state: streamer={} viewers={}", status.has_streamer, status.viewer_count
    )


app = FastAPI(
    version="1.0",
    title="Camera Relay Signaling API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=get_app_environ_config().API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore


def build_granian_kwargs():
    config = get_app_environ_config()

    kwargs = {
        "interface": "asgi",
        "address": config.API_HOST,
        "port": config.API_PORT,
        "workers": config.API_WORKERS,
        "reload": config.DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("app.main:app", **granian_kwargs).serve()
