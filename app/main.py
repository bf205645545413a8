from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from agent.errors import ProviderError
from agent.records import MemoryRecord, TranscriptSegment
from agent.service import TranscriptService, build_service
from config.settings import get_settings


settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("recall")


@asynccontextmanager
async def lifespan(app: FastAPI):
    owned = getattr(app.state, "service", None) is None
    if owned:
        app.state.service = build_service(settings)
    service: TranscriptService = app.state.service
    janitor = asyncio.create_task(service.run_janitor(), name="session-janitor")
    logger.info("Transcript service ready (env=%s)", settings.app_env)
    try:
        yield
    finally:
        janitor.cancel()
        await asyncio.gather(janitor, return_exceptions=True)
        await service.shutdown()
        if owned:
            await service.memory.close()
            app.state.service = None


app = FastAPI(title="Memory Recall Agent", version="1.0.0", lifespan=lifespan)

# CORS: allow local frontend during development
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    logger.info("%s %s", request.method, request.url.path)
    response = await call_next(request)
    logger.info(
        "%s %s completed %s in %.0fms",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - start) * 1000,
    )
    return response


class WebhookRequest(BaseModel):
    session_id: Optional[str] = Field(None, description="Conversation session identifier")
    segments: Optional[List[TranscriptSegment]] = Field(
        default=None,
        description="Transcript fragments in arrival order",
    )


def get_service(request: Request) -> TranscriptService:
    return request.app.state.service


async def read_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


def parse_body(model: type, data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


@app.post("/webhook")
async def webhook(request: Request) -> Any:
    # The id is checked before the segments are validated.
    data = await read_body(request)
    if not isinstance(data, dict) or not data.get("session_id"):
        return JSONResponse(status_code=400, content={"error": "No session ID provided"})
    req = parse_body(WebhookRequest, data)

    logger.info(
        "Incoming segments: session_id=%s count=%s", req.session_id, len(req.segments or [])
    )
    try:
        message = await get_service(request).handle_segments(
            req.session_id, [segment.text for segment in req.segments or []]
        )
    except ProviderError as e:
        logger.exception("Segment processing failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    if message is not None:
        return {"message": message}
    return {"status": "success"}


@app.get("/webhook/responses")
async def webhook_responses(request: Request, session_id: Optional[str] = None) -> Any:
    if not session_id:
        return JSONResponse(status_code=400, content={"error": "No session ID provided"})
    messages = get_service(request).drain_responses(session_id)
    return {"session_id": session_id, "messages": messages}


@app.get("/webhook/setup-status")
def setup_status() -> Dict[str, Any]:
    return {"is_setup_completed": True}


@app.post("/webhook/memory")
async def webhook_memory(request: Request, uid: Optional[str] = None) -> Any:
    if not uid:
        return JSONResponse(status_code=400, content={"error": "No user ID provided"})
    record = parse_body(MemoryRecord, await read_body(request))

    try:
        stored = await get_service(request).store_record(record, uid)
    except ProviderError as e:
        logger.exception("Memory record ingestion failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    logger.info("Memory record stored: uid=%s entries=%s", uid, stored)
    return {"status": "success"}


@app.get("/")
def index() -> Dict[str, str]:
    return {
        "message": "Hi! Welcome to the memory recall agent",
        "memoryCreationEndpoint": "/webhook/memory",
        "transcriptionsEndpoint": "/webhook",
        "responsesEndpoint": "/webhook/responses",
        "setupStatusEndpoint": "/webhook/setup-status",
    }
