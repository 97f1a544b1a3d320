"""
HTTP API adapter for imagehub.

Architectural role:
- Expose generation and publishing over JSON HTTP endpoints.
- Enforce adapter-level input validation.
- Delegate work to `ImageGenerationService` and `PublishDispatcher`.
- Normalize outcomes to JSON responses.

Endpoints:
- `GET /api/platforms`: enabled image providers.
- `POST /api/generate`: one provider, fan-out (`mode="all"`) or sequential
  fallback (`mode="first_success"`).
- `GET /api/publish/platforms`: registered publish targets.
- `POST /api/publish`: publish an artifact to one or many platforms.

Input validation behavior:
- Empty prompt, malformed size or unknown mode -> HTTP 400.
- Unknown or disabled provider -> HTTP 404.
- Failed single-provider generation, or no success in first-success mode
  -> HTTP 502 with the failed outcome(s).
- Publish `image_path` outside the artifact output directory -> HTTP 400.

Side effects:
- Builds the runtime (config, registries, logging) lazily on first use.
- Blocking provider calls run in worker threads via `asyncio.to_thread`.
"""

from dotenv import load_dotenv

load_dotenv()

from dataclasses import dataclass
import asyncio
import logging
import os

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from imagehub.api.log_setup import configure_logging
from imagehub.config.provider_config import (
    build_generation_service,
    build_publish_dispatcher,
    load_config,
)
from imagehub.image.errors import AllProvidersFailedError, ProviderNotFoundError
from imagehub.image.models import GenerationRequest
from imagehub.image.service import ImageGenerationService
from imagehub.image.sizing import parse_size
from imagehub.publish.dispatcher import PublishDispatcher
from imagehub.publish.models import PublishRequest


logger = logging.getLogger(__name__)

app = FastAPI(title="imagehub")


# ============================================================
# Runtime
# ============================================================

@dataclass
class Runtime:
    service: ImageGenerationService
    dispatcher: PublishDispatcher
    output_dir: str


_runtime = None


def get_runtime() -> Runtime:
    """Return the process runtime, building it from configuration on first use."""
    global _runtime
    if _runtime is None:
        config = load_config()
        configure_logging(config.image_gen.log_dir)
        _runtime = Runtime(
            service=build_generation_service(config),
            dispatcher=build_publish_dispatcher(config),
            output_dir=config.image_gen.output_dir,
        )
    return _runtime


def set_runtime(runtime: Runtime | None) -> None:
    """Install a prebuilt runtime (tests, embedding applications)."""
    global _runtime
    _runtime = runtime


# ============================================================
# Request Schemas
# ============================================================

class GenerateBody(BaseModel):
    prompt: str
    platform: str | None = None
    size: str | None = None
    model: str | None = None
    mode: str = "all"


class PublishBody(BaseModel):
    image_path: str
    platforms: list[str] = []
    title: str = ""
    content: str = ""


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _is_artifact(output_dir: str, path: str) -> bool:
    """True when `path` resolves to a location inside the artifact tree."""
    root = os.path.realpath(output_dir)
    target = os.path.realpath(path)
    try:
        return os.path.commonpath([root, target]) == root
    except ValueError:
        return False


# ============================================================
# Providers
# ============================================================

@app.get("/api/platforms")
def list_platforms():
    registry = get_runtime().service.registry
    return {"platforms": [d.to_dict() for d in registry.enabled()]}


# ============================================================
# Generation
# ============================================================

@app.post("/api/generate")
async def generate(body: GenerateBody):
    """Generate an image with one provider or across all enabled providers."""
    try:
        request = GenerationRequest(
            prompt=body.prompt,
            provider=body.platform or None,
            size=body.size or None,
            model=body.model or None,
            mode=body.mode,
        )
        size = parse_size(request.size)
    except ValueError as err:
        return _error(400, str(err))

    service = get_runtime().service

    if request.provider:
        try:
            outcome = await asyncio.to_thread(
                service.generate_one, request.provider, request.prompt, size, request.model
            )
        except ProviderNotFoundError as err:
            return _error(404, str(err))
        if not outcome.success:
            return JSONResponse(status_code=502, content={"message": "failed", **outcome.to_dict()})
        return {"message": "success", **outcome.to_dict()}

    if request.mode == "first_success":
        try:
            outcome = await asyncio.to_thread(service.generate_first_success, request.prompt, size)
        except AllProvidersFailedError as err:
            return _error(502, str(err), results=[o.to_dict() for o in err.outcomes])
        return {"message": "success", **outcome.to_dict()}

    outcomes = await service.generate_fan_out(request.prompt, size)
    return {
        "message": "success",
        "total": len(outcomes),
        "succeeded": sum(1 for o in outcomes if o.success),
        "results": [o.to_dict() for o in outcomes],
    }


# ============================================================
# Publishing
# ============================================================

@app.get("/api/publish/platforms")
def list_publish_platforms():
    dispatcher = get_runtime().dispatcher
    return {"platforms": [p.to_dict() for p in dispatcher.platforms()]}


@app.post("/api/publish")
async def publish(body: PublishBody):
    """Publish an artifact; an empty platform list targets every registered one."""
    runtime = get_runtime()
    if not _is_artifact(runtime.output_dir, body.image_path):
        return _error(400, f"image_path is not inside the artifact directory: {body.image_path}")

    request = PublishRequest(
        image_path=body.image_path,
        platforms=list(body.platforms),
        title=body.title,
        content=body.content,
    )
    results = await asyncio.to_thread(runtime.dispatcher.publish, request)
    return {
        "message": "success",
        "results": {key: outcome.to_dict() for key, outcome in results.items()},
    }
