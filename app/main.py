"""Machine Audit Escrow Service.

Accepts photo/audio/report evidence of an industrial machine, obtains a
HEALTHY/CRITICAL verdict from a multimodal inference service and, when the
verdict authorizes it, releases a fixed payment from a custodial Solana
account.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from app.agents.evidence_store import EvidenceStore
from app.agents.settlement import SettlementAuthority
from app.agents.verdict_interpreter import VerdictInterpreter
from app.api.routes.audit import router as audit_router
from app.api.routes.health import router as health_router
from app.api.routes.monitoring import router as monitoring_router
from app.clients.ledger_client import LedgerClient, load_custodial_keypair
from app.core.config import AppEnvironment, Settings, get_settings
from app.core.errors import EscrowError, StartupConfigurationError, get_status_code
from app.core.logging import setup_logging
from app.core.tracing import clear_tracing_context, set_request_id
from app.llm.provider import get_inference_model
from app.services.audit_service import AuditService
from app.utils.clock import utc_timestamp

logger = structlog.get_logger(__name__)

AUDIT_PREFIX = "/api"


def _request_log_context(request: Request) -> dict[str, str]:
    return {
        "path": request.url.path,
        "method": request.method,
        "client_host": request.client.host if request.client else "",
    }


def build_audit_service(settings: Settings) -> tuple[AuditService, LedgerClient]:
    """Wire the pipeline collaborators from configuration.

    Raises:
        StartupConfigurationError: if a credential is missing or the
            custodial secret does not decode.
    """
    missing = settings.missing_credentials()
    if missing:
        raise StartupConfigurationError(
            f"Missing required configuration: {', '.join(missing)}",
            details={"missing": missing},
        )

    try:
        custodian = load_custodial_keypair(settings.ledger.private_key.get_secret_value())
    except ValueError as exc:
        raise StartupConfigurationError(
            "Solana key error. Check SOLANA_PRIVATE_KEY holds a valid base58 keypair."
        ) from exc

    ledger = LedgerClient(settings.ledger)
    interpreter = VerdictInterpreter(
        get_inference_model(settings),
        settings.policy,
        enabled=settings.llm.enabled,
    )
    settlement = SettlementAuthority(ledger, custodian, settings.ledger)
    service = AuditService(
        store=EvidenceStore(settings.evidence),
        interpreter=interpreter,
        settlement=settlement,
        policy=settings.policy,
    )
    return service, ledger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging()

    try:
        service, ledger = build_audit_service(settings)
    except StartupConfigurationError as exc:
        logger.critical("Refusing to start", error=exc.message, **(exc.details or {}))
        raise

    app.state.settings = settings
    app.state.audit_service = service
    app.state.settlement = service.settlement
    app.state.ledger_client = ledger

    logger.info(
        "Starting Machine Audit Escrow",
        env=settings.app.env.value,
        version=settings.app.version,
        wallet=str(service.settlement.custodian_pubkey),
        network=settings.ledger.cluster,
        audit_endpoint=f"{AUDIT_PREFIX}/audit-machine",
        inference_enabled=settings.llm.enabled,
        fallback_mode=settings.policy.fallback_mode.value,
    )

    yield

    await ledger.close()
    logger.info("Machine Audit Escrow stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Machine Audit Escrow",
        description=(
            "Evidence-driven machine health arbitration with conditional "
            "release of a fixed payment on Solana."
        ),
        version=settings.app.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.app.env != AppEnvironment.PROD else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.app.env != AppEnvironment.PROD else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_allowed_origins,
        allow_credentials=False,
        allow_methods=settings.security.cors_allow_methods,
        allow_headers=settings.security.cors_allow_headers,
    )

    app.include_router(health_router)
    app.include_router(monitoring_router)
    app.include_router(audit_router, prefix=AUDIT_PREFIX)

    setup_telemetry(app, settings)

    @app.middleware("http")
    async def payload_size_guard(request: Request, call_next):
        """Reject bodies whose declared length exceeds the configured cap."""
        max_request = settings.security.max_request_size_bytes
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > max_request
            except ValueError:
                logger.warning(
                    "Invalid Content-Length header",
                    **_request_log_context(request),
                    content_length=content_length,
                )
                too_large = False
            if too_large:
                logger.warning(
                    "Request payload exceeds configured size limit",
                    **_request_log_context(request),
                    content_length=content_length,
                    max_request_size_bytes=max_request,
                )
                return JSONResponse(
                    status_code=413,
                    content={
                        "error": "File upload error",
                        "message": "Request payload too large",
                        "timestamp": utc_timestamp(),
                    },
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Propagate or generate X-Request-ID and bind it for logging."""
        request_id = set_request_id(request.headers.get("x-request-id"))
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            clear_tracing_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        """Set baseline security headers for all responses."""
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        return response

    @app.exception_handler(EscrowError)
    async def domain_error_handler(request: Request, exc: EscrowError) -> JSONResponse:
        """Handle domain-specific errors."""
        status_code = get_status_code(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Domain exception",
            **_request_log_context(request),
            status_code=status_code,
            error=exc.message,
            error_details=exc.details or {},
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.message,
                "code": exc.code,
                **({"errors": exc.details} if exc.details else {}),
                "timestamp": utc_timestamp(),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def upload_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed multipart bodies and fields are client errors."""
        logger.warning("File upload error", **_request_log_context(request), errors=exc.errors())
        return JSONResponse(
            status_code=400,
            content={
                "error": "File upload error",
                "message": "; ".join(str(err.get("msg", "")) for err in exc.errors()),
                "timestamp": utc_timestamp(),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(
            "Unhandled exception",
            **_request_log_context(request),
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": "Internal server error",
                "timestamp": utc_timestamp(),
            },
        )

    return app


def setup_telemetry(app: FastAPI, settings: Settings) -> None:
    """Setup OpenTelemetry instrumentation."""
    if not settings.observability.otlp_endpoint:
        return

    resource = Resource(attributes={SERVICE_NAME: settings.observability.service_name})
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(
        endpoint=settings.observability.otlp_endpoint,
        insecure=settings.observability.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.env == AppEnvironment.LOCAL,
        workers=1 if settings.app.env == AppEnvironment.LOCAL else settings.server.workers,
        log_level=settings.app.log_level.lower(),
    )


if __name__ == "__main__":
    run()
