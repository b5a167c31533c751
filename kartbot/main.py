# Entry point for the FastAPI app
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import json
import logging
import time

from . import config
from .assistant import AssistantService
from .errors import AssistantError, ValidationError
from .llm_client import OpenAIChatClient
from .rag.embedder import OpenAIEmbedder
from .security import get_client_ip, require_admin

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


def build_assistant() -> AssistantService:
    return AssistantService(embedder=OpenAIEmbedder(), generator=OpenAIChatClient())


def get_assistant(request: Request) -> AssistantService:
    return request.app.state.assistant


@app.on_event("startup")
async def startup_event():
    if getattr(app.state, "assistant", None) is None:
        app.state.assistant = build_assistant()
    await app.state.assistant.start()
    logger.info("[STARTUP] Initialization complete")


@app.on_event("shutdown")
async def shutdown_event():
    assistant = getattr(app.state, "assistant", None)
    if assistant is not None:
        await assistant.stop()


@app.exception_handler(AssistantError)
async def assistant_error_handler(request: Request, exc: AssistantError):
    if exc.status_code >= 500:
        logger.error(f"[CHAT] {request.url.path} failed: {exc!r}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.post("/api/faq-response")
async def faq_response(request: Request, assistant: AssistantService = Depends(get_assistant)):
    t0 = time.monotonic()
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be JSON.")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")

    session_id = body.get("sessionId")
    result = await assistant.answer(
        body.get("query"),
        session_id=session_id if isinstance(session_id, str) else None,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("User-Agent", ""),
    )
    logger.info(f"[CHAT] done in {int((time.monotonic() - t0) * 1000)} ms")
    return result


@app.get("/healthz")
def healthz():
    return {"ok": True, "ts": int(time.time() * 1000)}


@app.get("/kb-status")
def kb_status(assistant: AssistantService = Depends(get_assistant)):
    return assistant.knowledge.status()


@app.get("/prompt-status")
def prompt_status(assistant: AssistantService = Depends(get_assistant)):
    return assistant.instructions.status()


@app.post("/kb-reload", dependencies=[Depends(require_admin)])
async def kb_reload(assistant: AssistantService = Depends(get_assistant)):
    try:
        return await assistant.reload_knowledge()
    except AssistantError as e:
        logger.error(f"[KB] Reload error: {e}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})


@app.post("/prompt-reload", dependencies=[Depends(require_admin)])
async def prompt_reload(assistant: AssistantService = Depends(get_assistant)):
    try:
        return await assistant.reload_instructions()
    except AssistantError as e:
        logger.error(f"[PROMPT] Reload error: {e}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})


@app.get("/debug-config", dependencies=[Depends(require_admin)])
def debug_config(assistant: AssistantService = Depends(get_assistant)):
    return assistant.debug_config()
