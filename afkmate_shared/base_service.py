"""
Base service class for AFKMate Access Layer services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import time

from afkmate_shared.config import ServiceConfig, get_config
from afkmate_shared.logging import configure_logging, get_logger, set_request_id, clear_context
from afkmate_shared.metrics import get_metrics_collector
from afkmate_shared.errors import AfkmateException

REQUEST_ID_HEADER = "X-Request-ID"


def format_iso(value: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def apply_rate_limit_headers(request: Request, response: Response) -> Response:
    """Copy advisory headers from an admission stored on the request, if any."""
    admission = getattr(request.state, "admission", None)
    if admission is not None:
        for name, value in admission.headers().items():
            response.headers[name] = value
    return response


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name, version=self.config.version)

        configure_logging(service_name, self.config.log_level, self.config.json_logs)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.on_startup()
            try:
                yield
            finally:
                await self.on_shutdown()

        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"AFKMate Access Layer - {self.service_name.title()} Service",
            version=self.config.version,
            docs_url=None if self.config.is_production else "/docs",
            redoc_url=None if self.config.is_production else "/redoc",
            lifespan=lifespan,
        )

    async def on_startup(self) -> None:
        """Start background resources. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Release background resources. Override in subclasses."""

    def _setup_middleware(self):
        """Set up middleware."""

        @self.app.middleware("http")
        async def add_request_context(request: Request, call_next):
            request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
            start_time = time.time()

            response = await call_next(request)
            duration = time.time() - start_time

            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            self.metrics.record_http_request(
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
                duration=duration
            )
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers[REQUEST_ID_HEADER] = request_id
            clear_context()
            return response

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.api_route("/api/health", methods=["GET", "HEAD"])
        async def health_check(request: Request):
            """Health check endpoint. Does not expose configuration state."""
            if request.method == "HEAD":
                return Response(status_code=200)
            return {
                "status": "ok",
                "timestamp": format_iso(datetime.now(timezone.utc)),
                "version": self.config.version,
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            from prometheus_client import CONTENT_TYPE_LATEST
            return Response(
                content=self.metrics.render(),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(AfkmateException)
        async def access_layer_exception_handler(request: Request, exc: AfkmateException):
            """Handle AfkmateException."""
            log = self.logger.error if exc.status_code >= 500 else self.logger.info
            log(
                "Access layer error",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code
            )
            response = JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )
            return apply_rate_limit_headers(request, response)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=exc)
            response = JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {}
                }
            )
            return apply_rate_limit_headers(request, response)

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
