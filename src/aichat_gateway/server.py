"""FastAPI web server for aichat-gateway."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .completion import CompletionRequest, CompletionService
from .errors import GatewayError
from .providers import build_client
from .registry import BASE_URL_HEADERS, HEADER_KEYS, ModelRegistry
from .validation import CredentialValidationService

logger = logging.getLogger(__name__)

app = FastAPI(title="aichat-gateway", version=__version__)

# Service cache (populated on first request)
_service: CompletionService | None = None


def _get_service() -> CompletionService:
    """Lazily initialize and cache the completion service."""
    global _service
    if _service is None:
        _service = CompletionService(registry=ModelRegistry(), client_factory=build_client)
        logger.info("Serving models: %s", _service.registry.names())
    return _service


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    return JSONResponse(status_code=400, content={"error": f"Invalid request body: {', '.join(fields)}"})


# ── Routes ───────────────────────────────────────────────────────


@app.post("/api/completion")
async def completion(body: CompletionRequest, request: Request):
    """Generate a title (or a message summary) with the requested model."""
    result = await _get_service().handle(body, request.headers)
    return result.to_dict()


@app.get("/api/models")
async def get_models():
    """Return the logical models this gateway can route."""
    return [
        {
            "name": d.logical_name,
            "provider": d.provider,
            "header": d.credential_header,
        }
        for d in _get_service().registry.descriptors()
    ]


@app.post("/api/keys/validate")
async def validate_keys(keys: dict[str, str], request: Request):
    """Check each submitted key against its provider; one result per provider."""
    validator = CredentialValidationService(base_url=request.headers.get(BASE_URL_HEADERS["litellm"], ""))
    results = await validator.validate_many(keys)
    return {provider: result.to_dict() for provider, result in results.items()}


@app.get("/api/litellm/models")
async def get_litellm_models(request: Request):
    """Return the model ids advertised by the caller's LiteLLM proxy."""
    base_url = request.headers.get(BASE_URL_HEADERS["litellm"], "")
    api_key = request.headers.get(HEADER_KEYS["litellm"], "")
    validator = CredentialValidationService(base_url=base_url)
    return {"models": await validator.fetch_custom_models(api_key)}
