"""
FastAPI REST API for contract analysis.

Provides endpoints for:
- Triggering analysis of an uploaded contract
- Reading back a contract's status and results
- Health and circuit breaker status
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .config import Settings
from .models.schemas import AnalyzeRequest, AnalyzeResponse, ContractResponse, ErrorResponse
from .services.analysis_service import ContractAnalysisService, UNEXPECTED_ERROR_MESSAGE
from .services.api_resilience import all_breaker_statuses, any_breaker_open
from .services.blob_store import SupabaseBlobStore
from .services.completion_client import CompletionClient
from .services.contract_store import build_contract_store
from .services.extraction_strategies import ExtractionDispatcher
from .services.identity import Identity, SupabaseIdentityService
from .utils.dependencies import (
    get_analysis_service,
    get_contract_store,
    get_current_identity,
    reset_services,
    set_analysis_service,
    set_contract_store,
    set_identity_service,
)
from .utils.errors import ContractAnalysisError, InputInvalid
from .utils.functional import format_timestamp
from .utils.logging import api_logger, setup_logging
from .utils.request_context import (
    REQUEST_ID_HEADER,
    bind_request_context,
    clear_request_context,
    set_request_id,
)
from .workflows.contract_analysis_workflow import ContractAnalysisWorkflow

logger = logging.getLogger(__name__)

SERVICE_NAME = "Contract Analysis API"
SERVICE_VERSION = "1.0.0"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to set request ID for each request."""

    async def dispatch(self, request, call_next):
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_request_context()


app = FastAPI(
    title=SERVICE_NAME,
    description="Structured analysis and risk classification of real estate purchase contracts",
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=[REQUEST_ID_HEADER],
)

app.add_middleware(RequestContextMiddleware)

# Collaborators owned by the app, closed on shutdown
blob_store: Optional[SupabaseBlobStore] = None
identity_service: Optional[SupabaseIdentityService] = None
completion_client: Optional[CompletionClient] = None


def _error_response(
    status_code: int,
    message: str,
    details: Optional[Any] = None
) -> JSONResponse:
    body = ErrorResponse(error=message, details=details)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True)
    )


@app.on_event("startup")
async def startup_event():
    """
    Initialize services on application startup.
    """
    global blob_store, identity_service, completion_client

    settings = Settings.from_env()
    setup_logging(settings.log_level, json_format=settings.log_json)

    logger.info(f"Starting {SERVICE_NAME}...")

    for name in settings.missing_settings():
        logger.warning(f"{name} not set; requests that need it will fail")

    try:
        store = build_contract_store(settings.contract_store_backend, settings.redis_url)
        logger.info(f"Contract store initialized ({settings.contract_store_backend})")

        blob_store = SupabaseBlobStore(
            base_url=settings.supabase_url or "",
            service_role_key=settings.supabase_service_role_key or "",
        )
        identity_service = SupabaseIdentityService(
            base_url=settings.supabase_url or "",
            anon_key=settings.supabase_anon_key or "",
        )
        completion_client = CompletionClient.from_settings(settings)

        workflow = ContractAnalysisWorkflow(
            blob_store=blob_store,
            dispatcher=ExtractionDispatcher(
                completion_client,
                max_text_chars=settings.max_contract_text_chars
            ),
        )
        analysis_service = ContractAnalysisService(store=store, workflow=workflow)

        set_contract_store(store)
        set_identity_service(identity_service)
        set_analysis_service(analysis_service)

        logger.info("All services initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    recovered = await analysis_service.recover_stale_analyses(settings.stale_analysis_seconds)
    if recovered:
        logger.warning(f"Recovered {len(recovered)} interrupted analyses at startup")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on application shutdown.
    """
    logger.info(f"Shutting down {SERVICE_NAME}...")

    for resource in (blob_store, identity_service, completion_client):
        if resource is not None:
            await resource.close()

    reset_services()
    logger.info("Shutdown complete")


@app.get("/", tags=["Health"])
async def root():
    """
    Health check endpoint.
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": format_timestamp()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Detailed health check including collaborator and circuit breaker status.
    """
    store = get_contract_store()
    store_healthy = store.health_check() if store else False
    completion_configured = bool(completion_client and completion_client.configured)

    healthy = store_healthy and not any_breaker_open()

    return {
        "status": "healthy" if healthy else "degraded",
        "services": {
            "contract_store": "up" if store_healthy else "down",
            "completion": "configured" if completion_configured else "not_configured",
        },
        "circuit_breakers": all_breaker_statuses(),
        "timestamp": format_timestamp()
    }


async def _read_analyze_request(request: Request) -> AnalyzeRequest:
    raw = await request.body()
    if not raw.strip():
        raise InputInvalid("contract_id is required")

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InputInvalid("Invalid JSON body", {"reason": str(e)})

    if not isinstance(payload, dict):
        raise InputInvalid("Request body must be a JSON object")

    try:
        body = AnalyzeRequest.model_validate(payload)
    except ValidationError as e:
        raise InputInvalid(
            "Invalid request body",
            json.loads(e.json(include_url=False))
        )

    if not body.contract_id:
        raise InputInvalid("contract_id is required")
    return body


@app.post(
    "/contracts/analyze",
    response_model=AnalyzeResponse,
    tags=["Contracts"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    }
)
async def analyze_contract(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ContractAnalysisService = Depends(get_analysis_service)
):
    """
    Analyze a previously uploaded contract.

    The caller must own the contract. The request runs the whole pipeline:
    1. Marks the contract as analyzing
    2. Downloads the stored file and extracts its text
    3. Runs structured extraction on the completion service
    4. Classifies overall risk and stores the results

    Body:
        {"contract_id": "<id>"}

    Returns:
        AnalyzeResponse with the terminal status

    Raises:
        400: Missing contract_id or malformed body
        401: Missing or invalid bearer token
        403: Caller does not own the contract
        404: Contract not found
        500: Download or extraction failed (contract marked as error)
    """
    body = await _read_analyze_request(request)
    bind_request_context(contract_id=body.contract_id, user_id=identity.id)

    api_logger.info("analysis_requested", contract_id=body.contract_id)

    record = await service.analyze(identity, body.contract_id)

    return AnalyzeResponse(contract_id=record.id, status=record.status)


@app.get(
    "/contracts/{contract_id}",
    response_model=ContractResponse,
    tags=["Contracts"],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    }
)
async def get_contract(
    contract_id: str = Path(..., description="Contract identifier"),
    identity: Identity = Depends(get_current_identity),
    service: ContractAnalysisService = Depends(get_analysis_service)
):
    """
    Get a contract's current status and analysis results.

    Raises:
        401: Missing or invalid bearer token
        403: Caller does not own the contract
        404: Contract not found
    """
    record = await service.get_contract(identity, contract_id)
    return ContractResponse(contract=record)


@app.exception_handler(ContractAnalysisError)
async def contract_analysis_error_handler(request, exc: ContractAnalysisError):
    """
    Render pipeline errors in the standard error envelope.
    """
    log = api_logger.error if exc.status_code >= 500 else api_logger.warning
    log(
        "request_failed",
        path=request.url.path,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        error=exc.message
    )
    return _error_response(exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request, exc: RequestValidationError):
    """
    Malformed requests are client errors (400), not 422.
    """
    errors = json.loads(json.dumps(exc.errors(), default=str))
    return _error_response(400, "Invalid request", errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """
    Keep framework errors (unknown routes, 503 from dependencies) in the same envelope.
    """
    detail: Dict[str, Any] = exc.detail if isinstance(exc.detail, dict) else {}
    message = detail.get("message") or str(exc.detail)
    return _error_response(exc.status_code, message, detail or None)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Global exception handler for unhandled errors.
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error_response(500, UNEXPECTED_ERROR_MESSAGE, str(exc) or None)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "contract_analyzer.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
