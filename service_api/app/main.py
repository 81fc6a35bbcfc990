"""
AFKMate API service: token validation and rate-limited analysis routes.
"""

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from afkmate_shared.base_service import BaseService, apply_rate_limit_headers, format_iso
from afkmate_shared.config import DEV_TOKEN_SECRET, ServiceConfig
from afkmate_shared.errors import ValidationError
from afkmate_shared.logging import set_client_context
from .adapters import LLMClient
from .ratelimit import (
    ANALYZE_POLICY,
    FIX_POLICY,
    VALIDATE_TOKEN_POLICY,
    AdmissionResult,
    RateLimiter,
    RateLimitPolicy,
    build_rate_limiter,
    identify_client,
)
from .tokens import TokenCodec
from .validation import validate_analysis_input, validate_token_format

TOO_MANY_VALIDATIONS = "Too many validation attempts. Please try again later."
SERVICE_UNAVAILABLE = "Service temporarily unavailable"
INVALID_JSON = "Invalid JSON in request body"


class ApiService(BaseService):
    """API service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 *,
                 rate_limiter: Optional[RateLimiter] = None,
                 llm_client: Optional[LLMClient] = None,
                 codec: Optional[TokenCodec] = None):
        super().__init__("api", 8000, config)

        self.codec = codec or self._build_codec()
        self.rate_limiter = rate_limiter or build_rate_limiter(self.config, self.metrics)
        self.llm_client = llm_client or LLMClient(
            self.config.anthropic_api_key.get_secret_value() if self.config.anthropic_api_key else None,
            self.config.llm_model,
            base_url=self.config.llm_base_url,
            timeout=self.config.llm_timeout_seconds,
            metrics=self.metrics,
        )

        self._setup_api_routes()

    def _build_codec(self) -> TokenCodec:
        secret = self.config.effective_token_secret()
        if secret is None:
            self.logger.critical(
                "FATAL: AFKMATE_TOKEN_SECRET is not set in production, token validation is disabled"
            )
        elif secret == DEV_TOKEN_SECRET:
            self.logger.warning("AFKMATE_TOKEN_SECRET not set, using development secret", env=self.config.env)
        return TokenCodec(secret)

    async def on_startup(self) -> None:
        await self.rate_limiter.start()
        self.logger.info("API service started", rate_limit_backend=self.rate_limiter.backend_name)

    async def on_shutdown(self) -> None:
        await self.rate_limiter.close()
        self.logger.info("API service stopped")

    async def _admit(self, request: Request, policy: RateLimitPolicy) -> AdmissionResult:
        """Run admission for ``request`` and keep the result for the response headers."""
        client_id = identify_client(request.headers)
        set_client_context(client_id)
        admission = await self.rate_limiter.admit(client_id, policy)
        request.state.admission = admission
        if not admission.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                policy=policy.name,
                reset_in_seconds=admission.reset_in_seconds
            )
        return admission

    @staticmethod
    def _respond(request: Request, status_code: int, content: Dict[str, Any]) -> JSONResponse:
        return apply_rate_limit_headers(request, JSONResponse(status_code=status_code, content=content))

    async def _read_json(self, request: Request) -> Any:
        try:
            return await request.json()
        except ValueError as e:
            raise ValidationError(INVALID_JSON) from e

    def _setup_api_routes(self):
        """Set up API routes."""

        @self.app.post("/api/validate-token")
        async def validate_token(request: Request):
            """Validate an access token and report its tier and expiry."""
            admission = await self._admit(request, VALIDATE_TOKEN_POLICY)
            if not admission.allowed:
                return self._respond(request, 429, {
                    "valid": False,
                    "message": TOO_MANY_VALIDATIONS,
                    "resetInSeconds": admission.reset_in_seconds,
                })

            if not self.codec.configured:
                self.logger.error("Token validation requested without a signing secret")
                return self._respond(request, 503, {"valid": False, "message": SERVICE_UNAVAILABLE})

            try:
                body = await request.json()
            except ValueError:
                return self._respond(request, 400, {"valid": False, "message": INVALID_JSON})

            token = body.get("token") if isinstance(body, dict) else None
            try:
                validate_token_format(token)
            except ValidationError as e:
                self.metrics.record_token_validation("rejected_precheck")
                return self._respond(request, 400, {"valid": False, "message": e.message})

            result = self.codec.parse(token)
            if not result.valid:
                self.metrics.record_token_validation(result.failure.value)
                return self._respond(request, 401, {"valid": False, "message": result.message})

            self.metrics.record_token_validation("valid")
            self.logger.info("Token validated", tier=result.claims.tier.value)
            return self._respond(request, 200, {
                "valid": True,
                "message": result.message,
                "tier": result.claims.tier.value,
                "expiresAt": format_iso(result.claims.expires_at),
            })

        @self.app.post("/api/analyze")
        async def analyze(request: Request):
            """Run an LLM analysis of the submitted code."""
            admission = await self._admit(request, ANALYZE_POLICY)
            if not admission.allowed:
                return self._rate_limited(request, admission)

            analysis_request = validate_analysis_input(await self._read_json(request))
            self.logger.info(
                "Analysis requested",
                file_name=analysis_request.file_name,
                input_length=len(analysis_request.input)
            )
            result = await self.llm_client.analyze(analysis_request)
            return self._respond(request, 200, {"result": result})

        @self.app.post("/api/fix")
        async def fix(request: Request):
            """Ask the LLM for a fix to one reported issue."""
            admission = await self._admit(request, FIX_POLICY)
            if not admission.allowed:
                return self._rate_limited(request, admission)

            fix_request = validate_analysis_input(await self._read_json(request), mode="fix")
            self.logger.info(
                "Fix requested",
                file_name=fix_request.file_name,
                issue_type=fix_request.issue.type
            )
            result = await self.llm_client.generate_fix(fix_request)
            return self._respond(request, 200, {"result": result})

    def _rate_limited(self, request: Request, admission: AdmissionResult) -> JSONResponse:
        return self._respond(request, 429, {
            "error": "Rate limit exceeded",
            "retryAfter": admission.reset_in_seconds,
        })


def create_app(config: Optional[ServiceConfig] = None, **dependencies):
    """Create FastAPI application."""
    service = ApiService(config, **dependencies)
    return service.app


if __name__ == "__main__":
    service = ApiService()
    service.run()
