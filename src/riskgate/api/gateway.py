"""API Gateway - thin FastAPI adapter over RiskGateService."""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from riskgate.api.schemas import (
    AdminActionRequest,
    ChallengeResponse,
    ErrorResponse,
    EvaluateResponse,
    FailedAttemptRequest,
    FailedAttemptResponse,
    LockoutResponse,
    SignalsRequest,
    UnblockResponse,
)
from riskgate.api.service import RiskGateService
from riskgate.common.exceptions import (
    IdentityStoreUnavailableError,
    LockoutRejectedError,
    RiskGateException,
    SignalValidationError,
)

logger = logging.getLogger("riskgate_api")


# =============================================================================
# CORS CONFIGURATION
# =============================================================================

def get_cors_origins() -> List[str]:
    """Get allowed CORS origins from environment.

    In production, set RISKGATE_CORS_ORIGINS to a comma-separated list
    of allowed origins.
    """
    origins_env = os.environ.get("RISKGATE_CORS_ORIGINS", "")

    if origins_env:
        return [origin.strip() for origin in origins_env.split(",") if origin.strip()]

    if os.environ.get("RISKGATE_ENVIRONMENT", "development") == "production":
        logger.warning(
            "RISKGATE_CORS_ORIGINS not set in production. "
            "CORS will be disabled. Set RISKGATE_CORS_ORIGINS for cross-origin access."
        )
        return []

    logger.warning("Running in development mode with permissive CORS (allow_origins=['*'])")
    return ["*"]


def _error(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[dict] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            details=details or {},
            request_id=getattr(request.state, "request_id", None),
        ).model_dump(),
    )


def get_service(request: Request) -> RiskGateService:
    return request.app.state.service


def _client_headers(request: Request) -> dict:
    return {key.lower(): value for key, value in request.headers.items()}


def _remote_addr(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def create_app(
    service_factory: Callable[[], RiskGateService] = RiskGateService,
) -> FastAPI:
    """Build the application.

    Args:
        service_factory: Creates the service at startup. Tests pass a factory
            returning a service with injected collaborators.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("RiskGate API Gateway starting up...")
        app.state.service = service_factory()
        logger.info("RiskGate API Gateway ready")

        yield

        logger.info("RiskGate API Gateway shutting down...")
        app.state.service.shutdown()
        logger.info("RiskGate API Gateway shutdown complete")

    environment = os.environ.get("RISKGATE_ENVIRONMENT", "development")
    enable_docs_default = "false" if environment == "production" else "true"
    enable_docs = os.environ.get("RISKGATE_ENABLE_DOCS", enable_docs_default).lower() == "true"

    app = FastAPI(
        title="RiskGate API Gateway",
        description="Risk-adaptive access control: signal scoring, policy decisions and lockout.",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if enable_docs else None,
        redoc_url="/redoc" if enable_docs else None,
    )

    cors_origins = get_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["POST", "GET"],
            allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        )

    # =========================================================================
    # EXCEPTION HANDLERS
    # =========================================================================

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(
            "Request validation error",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _error(
            request, 400, "VALIDATION_ERROR", "Malformed request",
            details={"errors": [str(err.get("msg")) for err in exc.errors()]},
        )

    @app.exception_handler(SignalValidationError)
    async def signal_validation_handler(request: Request, exc: SignalValidationError) -> JSONResponse:
        logger.warning(
            f"Signal validation error: {exc.message}",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _error(request, 400, exc.code, exc.message, exc.details)

    @app.exception_handler(IdentityStoreUnavailableError)
    async def identity_unavailable_handler(
        request: Request, exc: IdentityStoreUnavailableError
    ) -> JSONResponse:
        logger.error(
            "Identity store unavailable",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _error(request, 503, exc.code, exc.message)

    @app.exception_handler(LockoutRejectedError)
    async def lockout_rejected_handler(request: Request, exc: LockoutRejectedError) -> JSONResponse:
        return _error(request, 409, exc.code, exc.message, exc.details)

    @app.exception_handler(RiskGateException)
    async def riskgate_error_handler(request: Request, exc: RiskGateException) -> JSONResponse:
        logger.error(
            f"Unhandled RiskGate error: {exc.code}",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _error(request, 500, exc.code, "An error occurred while processing the request")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Logs full exception for debugging but returns sanitized message to client."""
        logger.exception(
            "Unexpected error",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "error_type": type(exc).__name__,
            },
        )
        return _error(request, 500, "internal_error", "An unexpected error occurred")

    # =========================================================================
    # MIDDLEWARE
    # =========================================================================

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID to each request for tracing."""
        request_id = f"req_{uuid4().hex[:12]}"
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    @app.post(
        "/evaluate",
        response_model=EvaluateResponse,
        responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        summary="Evaluate an access request",
    )
    def evaluate(body: SignalsRequest, request: Request) -> EvaluateResponse:
        """Evaluate an access request and return the decision.

        Step-up outcomes are allowed=true with requires_step_up=true; the
        caller must obtain an identity proof before granting access.
        """
        service = get_service(request)
        response = service.evaluate(body, _client_headers(request), _remote_addr(request))
        logger.info(
            "Access evaluation complete",
            extra={
                "request_id": request.state.request_id,
                "decision_id": response.decision_id,
                "outcome": response.outcome,
                "risk_score": response.risk_score,
            },
        )
        return response

    @app.post(
        "/failed-attempts",
        response_model=FailedAttemptResponse,
        responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        summary="Record a failed authentication attempt",
    )
    def failed_attempt(body: FailedAttemptRequest, request: Request) -> FailedAttemptResponse:
        service = get_service(request)
        return service.record_failed_attempt(body, _client_headers(request), _remote_addr(request))

    @app.get("/lockout/{principal_id}", response_model=LockoutResponse)
    def lockout_status(principal_id: str, request: Request) -> LockoutResponse:
        return get_service(request).lockout_status(principal_id)

    @app.post("/admin/unblock", response_model=UnblockResponse)
    def unblock(body: AdminActionRequest, request: Request) -> UnblockResponse:
        return get_service(request).unblock(body.principal_id, body.reason, actor=body.actor)

    @app.post(
        "/admin/block",
        response_model=LockoutResponse,
        responses={409: {"model": ErrorResponse}},
    )
    def block(body: AdminActionRequest, request: Request) -> LockoutResponse:
        return get_service(request).block(body.principal_id, body.reason, actor=body.actor)

    @app.post("/proof/challenge", response_model=ChallengeResponse)
    def issue_challenge(request: Request) -> ChallengeResponse:
        """Issue a one-time challenge to bind an identity proof to."""
        service = get_service(request)
        if service.proof_gate is None:
            raise HTTPException(status_code=404, detail="identity_proofs_disabled")
        return ChallengeResponse(
            challenge=service.issue_challenge(),
            expires_in_seconds=service.rules.proofs.challenge_ttl_seconds,
        )

    @app.get("/health")
    def health_check(request: Request) -> dict:
        """Health check endpoint. Degraded while the policy service is unhealthy."""
        return get_service(request).health()

    return app


app = create_app()


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "riskgate.api.gateway:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
