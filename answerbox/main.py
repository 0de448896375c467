"""
FastAPI application: the AnswerBox entry point.

Serves the chat API (turns, chat records, sharing), model and provider
configuration, the search/retrieve/video-search tools, users and their
preferences, and runtime config.

Every body is validated against a schema in answerbox.schemas before it
reaches the store or the chat core. Status codes: 400 invalid input,
404 missing, 409 a turn is already running, 500 failure, 503 not initialized.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from answerbox import __version__
from answerbox.backends.router import MultiBackendRouter
from answerbox.chat.grouper import group, render
from answerbox.chat.pipeline import AnswerPipeline, DEFAULT_SYSTEM_PROMPT
from answerbox.chat.projector import project
from answerbox.chat.session import (
    ROLLBACK_POLICIES,
    SessionManager,
    TurnFailedError,
    TurnInProgressError,
)
from answerbox.config import get_config, get_runtime_config, get_setting, update_runtime_config
from answerbox.enhance import EnhanceError, ThaiEnhancer
from answerbox.schemas import (
    ChatIn,
    ChatSubmit,
    ChatUpdate,
    EnhanceRequest,
    ModelConfig,
    ModelUpdate,
    Preferences,
    RetrieveRequest,
    SearchHistoryEntry,
    SearchRequest,
    UserIn,
    VideoSearchRequest,
    dump,
    error_details,
)
from answerbox.storage.models import Chat, Message, generate_id
from answerbox.storage.sqlite_store import ChatOwnershipError, SQLiteStore, StorageError
from answerbox.tools.registry import RETRIEVE, SEARCH, VIDEO_SEARCH, ToolRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Globals — initialized at startup
# ---------------------------------------------------------------------------
sqlite_store: SQLiteStore | None = None
tool_registry: ToolRegistry | None = None
backend_router: MultiBackendRouter | None = None
pipeline: AnswerPipeline | None = None
sessions: SessionManager | None = None
enhancer: ThaiEnhancer | None = None

# Turn tasks started for SSE clients; held so they are not garbage collected
_background_tasks: set[asyncio.Task] = set()

RUNTIME_KEYS = ("default_model", "rollback_policy", "history_enabled", "log_level", "search_enabled")


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, log_cfg.get("level", "INFO").upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    global sqlite_store, tool_registry, backend_router, pipeline, sessions, enhancer

    cfg = get_config()
    _setup_logging(cfg)

    sqlite_store = SQLiteStore(cfg.get("storage", {}).get("sqlite_path", "./data/answerbox.db"))
    tool_registry = ToolRegistry(cfg.get("tools", {}))
    backend_router = MultiBackendRouter(cfg.get("backends", []))

    chat_cfg = cfg.get("chat", {})
    pipeline = AnswerPipeline(
        backend_router,
        tool_registry,
        system_prompt=chat_cfg.get("system_prompt") or DEFAULT_SYSTEM_PROMPT,
        related_count=chat_cfg.get("related_count", 3),
        temperature=chat_cfg.get("temperature", 0.3),
    )
    sessions = SessionManager(
        pipeline,
        sqlite_store,
        rollback_policy=get_setting("chat", "rollback_policy", "full"),
        persist=bool(get_setting("chat", "history_enabled", True)),
        max_sessions=chat_cfg.get("max_sessions", 256),
    )
    enhancer = ThaiEnhancer.from_config(cfg)

    logger.info(
        "AnswerBox started — listening on %s:%s",
        cfg.get("server", {}).get("host", "0.0.0.0"),
        cfg.get("server", {}).get("port", 8000),
    )
    logger.info("Storage: SQLite=%s", sqlite_store.db_path)
    logger.info("Tools: %s", tool_registry.list_tools())
    logger.info("Thai enhancement: %s", "enabled" if enhancer.configured else "disabled")

    yield

    for task in list(_background_tasks):
        task.cancel()
    logger.info("AnswerBox shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="AnswerBox",
    description="Conversational answer engine with web search.",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(ChatOwnershipError)
async def ownership_error_handler(request: Request, exc: ChatOwnershipError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": "Chat not found or access denied"}, status_code=404)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": "Storage error", "detail": str(exc)}, status_code=500)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _read_json(request: Request):
    """Parsed body, or None if it is not JSON."""
    try:
        return await request.json()
    except ValueError:
        return None


def _validate(schema, body, what: str):
    """(model, None) on success, (None, 400 response) on failure."""
    if body is None:
        return None, JSONResponse({"error": "invalid JSON"}, status_code=400)
    try:
        return schema.model_validate(body), None
    except ValidationError as e:
        return None, JSONResponse(
            {"error": f"Invalid {what}", "details": error_details(e)},
            status_code=400,
        )


def _missing(name: str) -> JSONResponse:
    return JSONResponse({"error": f"{name} is required"}, status_code=400)


def _not_ready(name: str) -> JSONResponse:
    return JSONResponse({"error": f"{name} not initialized"}, status_code=503)


def _default_models() -> list[dict]:
    return list(get_config().get("models", {}).get("defaults", []))


def _record_search(user_id: str | None, query: str, results: int, source: str | None, kind: str):
    """Search history is a side effect: a failure is logged, never returned."""
    if not user_id or not sqlite_store:
        return
    try:
        sqlite_store.add_search_history(user_id, query, results=results, source=source, kind=kind)
    except StorageError as e:
        logger.warning("Error saving search history for %s: %s", user_id, e)


def _apply_runtime_settings():
    """Push hot-reloadable settings into the live chat objects."""
    policy = get_setting("chat", "rollback_policy", "full")
    if policy not in ROLLBACK_POLICIES:
        logger.warning("Ignoring unknown rollback_policy %r", policy)
        policy = "full"
    sessions.rollback_policy = policy
    sessions.persist = bool(get_setting("chat", "history_enabled", True))
    pipeline.search_enabled = bool(get_setting("tools", "search_enabled", True))
    return policy


# ---------------------------------------------------------------------------
# Chat turns
# ---------------------------------------------------------------------------

@app.post("/api/chat")
async def chat_submit(request: Request):
    """
    Run one turn. Body: {chatId?, userId?, input, model?, related?, stream?}.

    Without `stream` the reply carries the new messages and the grouped UI.
    With `stream: true` the reply is an SSE stream of events:
        {type:"element", element}   one per UI element, in append order
        {type:"done", chatId}
        {type:"error", message}
    """
    if not sessions:
        return _not_ready("Chat sessions")
    data, err = _validate(ChatSubmit, await _read_json(request), "chat request")
    if err:
        return err

    policy = _apply_runtime_settings()
    chat_id = data.chat_id or generate_id()
    session = sessions.get(chat_id, data.user_id)
    session.rollback_policy = policy
    session.persist = sessions.persist
    model = data.model or get_setting("chat", "default_model", "")

    if session.busy:
        return JSONResponse({"error": "A turn is already in progress for this chat"}, status_code=409)

    if data.stream:
        return _stream_turn(session, data.input, model, data.related)

    try:
        produced = await session.submit(data.input, model=model, related=data.related)
    except TurnInProgressError as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    except TurnFailedError as e:
        return JSONResponse({"error": "Turn failed", "detail": str(e)}, status_code=500)

    return JSONResponse({
        "chatId": session.chat_id,
        "messages": [m.to_dict() for m in produced],
        "ui": render(session.grouped()),
    })


def _stream_turn(session, text: str, model: str, related: bool) -> StreamingResponse:
    queue: asyncio.Queue = asyncio.Queue()
    remove = session.add_listener(
        lambda element: queue.put_nowait({"type": "element", "element": element.to_dict()})
    )

    async def _run():
        try:
            await session.submit(text, model=model, related=related)
            queue.put_nowait({"type": "done", "chatId": session.chat_id})
        except (TurnInProgressError, TurnFailedError, StorageError) as e:
            queue.put_nowait({"type": "error", "message": str(e)})
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(_run())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    async def _event_stream():
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield f"data: {json.dumps(event)}\n\n"
        finally:
            remove()
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        _event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.post("/api/chat/{chat_id}/stop")
async def chat_stop(chat_id: str, userId: str = "anonymous"):
    """Stop the running turn. Already rendered parts stay."""
    if not sessions:
        return _not_ready("Chat sessions")
    session = sessions.peek(chat_id, userId)
    if session is None:
        return JSONResponse({"error": "No open session for this chat"}, status_code=404)
    stopped = await session.stop()
    return JSONResponse({"stopped": stopped, "state": session.state.value})


@app.delete("/api/chat/{chat_id}")
async def chat_clear(chat_id: str, userId: str = "anonymous"):
    """Close the live session and hand back a fresh chat id."""
    if not sessions:
        return _not_ready("Chat sessions")
    try:
        sessions.discard(chat_id, userId)
    except TurnInProgressError as e:
        return JSONResponse({"error": str(e)}, status_code=409)
    return JSONResponse({"chatId": generate_id()})


# ---------------------------------------------------------------------------
# Chat records
# ---------------------------------------------------------------------------

@app.get("/api/chats")
async def chats_list(userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    return JSONResponse([c.to_dict() for c in sqlite_store.list_chats(userId)])


@app.post("/api/chats")
async def chats_create(request: Request):
    if not sqlite_store:
        return _not_ready("Storage")
    data, err = _validate(ChatIn, await _read_json(request), "chat data")
    if err:
        return err

    chat = Chat.from_dict({
        **dump(data),
        "id": data.id or str(uuid4()),
        "messages": [m.model_dump() for m in data.messages],
    })
    sqlite_store.save_chat(chat, data.user_id)
    return JSONResponse(chat.to_dict())


@app.delete("/api/chats")
async def chats_clear(userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    if sessions:
        try:
            sessions.discard_user(userId)
        except TurnInProgressError as e:
            return JSONResponse({"error": str(e)}, status_code=409)
    removed = sqlite_store.clear_chats(userId)
    return JSONResponse({"success": True, "deleted": removed})


@app.get("/api/chats/{chat_id}")
async def chat_get(chat_id: str, userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    chat = sqlite_store.get_chat(chat_id, userId)
    if chat is None:
        return JSONResponse({"error": "Chat not found"}, status_code=404)
    return JSONResponse(chat.to_dict())


@app.patch("/api/chats/{chat_id}")
async def chat_update(chat_id: str, request: Request, userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    data, err = _validate(ChatUpdate, await _read_json(request), "chat data")
    if err:
        return err

    chat = sqlite_store.get_chat(chat_id, userId)
    if chat is None:
        return JSONResponse({"error": "Chat not found"}, status_code=404)

    if data.title is not None:
        chat.title = data.title
    if data.messages is not None:
        chat.messages = [Message.from_dict(m.model_dump()) for m in data.messages]
    if data.share_path is not None:
        chat.share_path = data.share_path
    sqlite_store.save_chat(chat, userId)
    return JSONResponse(chat.to_dict())


@app.delete("/api/chats/{chat_id}")
async def chat_delete(chat_id: str, userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    if sessions:
        try:
            sessions.discard(chat_id, userId)
        except TurnInProgressError as e:
            return JSONResponse({"error": str(e)}, status_code=409)
    if not sqlite_store.delete_chat(chat_id, userId):
        return JSONResponse({"error": "Chat not found or access denied"}, status_code=404)
    return JSONResponse({"success": True})


@app.post("/api/chats/{chat_id}")
async def chat_action(chat_id: str, userId: str | None = None, action: str | None = None):
    """Chat actions. Only `?action=share` exists."""
    if not userId:
        return _missing("User ID")
    if action != "share":
        return JSONResponse({"error": "Invalid action"}, status_code=400)
    if not sqlite_store:
        return _not_ready("Storage")
    chat = sqlite_store.share_chat(chat_id, userId)
    if chat is None:
        return JSONResponse({"error": "Chat not found"}, status_code=404)
    return JSONResponse({"sharePath": chat.share_path})


@app.get("/api/chats/{chat_id}/ui")
async def chat_ui(chat_id: str, userId: str | None = None):
    """Grouped UI of a chat: the live session if one is open, else the stored record."""
    if not userId:
        return _missing("User ID")
    session = sessions.peek(chat_id, userId) if sessions else None
    if session is not None:
        units = session.grouped()
    else:
        if not sqlite_store:
            return _not_ready("Storage")
        chat = sqlite_store.get_chat(chat_id, userId)
        if chat is None:
            return JSONResponse({"error": "Chat not found"}, status_code=404)
        units = group(project(chat.messages, chat_id=chat.id))
    return JSONResponse({"chatId": chat_id, "ui": render(units)})


@app.get("/api/share")
async def shared_chat(id: str | None = None):
    """Public read of a shared chat: no owner, follow-up affordances removed."""
    if not id:
        return _missing("Chat ID")
    if not sqlite_store:
        return _not_ready("Storage")
    chat = sqlite_store.get_shared_chat(id)
    if chat is None:
        return JSONResponse({"error": "Shared chat not found"}, status_code=404)
    body = chat.to_dict(include_owner=False)
    body["ui"] = render(group(project(chat.messages, is_share_page=True, chat_id=chat.id)))
    return JSONResponse(body)


# ---------------------------------------------------------------------------
# Models and providers
# ---------------------------------------------------------------------------

@app.get("/api/models")
async def models_list():
    """Stored models whose provider is enabled; the configured defaults if none stored."""
    if not sqlite_store:
        return _not_ready("Storage")
    models = sqlite_store.get_models()
    if models is None:
        return JSONResponse(_default_models())
    enabled = [
        m for m in models
        if m.get("enabled", True) is not False
        and backend_router is not None
        and backend_router.is_provider_enabled(m.get("providerId", ""))
    ]
    return JSONResponse(enabled)


@app.post("/api/models")
async def models_save(request: Request):
    if not sqlite_store:
        return _not_ready("Storage")
    body = await _read_json(request)
    if not isinstance(body, list):
        return JSONResponse({"error": "Expected an array of models"}, status_code=400)

    models, invalid = [], []
    for index, item in enumerate(body):
        try:
            models.append(dump(ModelConfig.model_validate(item)))
        except ValidationError as e:
            invalid.append({"index": index, "details": error_details(e)})
    if invalid:
        return JSONResponse({"error": "Invalid model data", "details": invalid}, status_code=400)

    sqlite_store.save_models(models)
    return JSONResponse({"success": True, "models": models})


@app.get("/api/models/{model_id:path}")
async def model_get(model_id: str):
    if not sqlite_store:
        return _not_ready("Storage")
    models = sqlite_store.get_models() or []
    for candidate in (models, _default_models()):
        for model in candidate:
            if model.get("id") == model_id:
                return JSONResponse(model)
    return JSONResponse({"error": "Model not found"}, status_code=404)


@app.patch("/api/models/{model_id:path}")
async def model_update(model_id: str, request: Request):
    if not sqlite_store:
        return _not_ready("Storage")
    data, err = _validate(ModelUpdate, await _read_json(request), "model data")
    if err:
        return err
    model = sqlite_store.update_model(model_id, dump(data, partial=True), defaults=_default_models())
    if model is None:
        return JSONResponse({"error": "Model not found"}, status_code=404)
    return JSONResponse(model)


@app.get("/api/providers")
async def providers_status():
    """Enabled flag for every known provider id."""
    if not backend_router:
        return _not_ready("Backend router")
    known = get_config().get("providers") or [b.name for b in backend_router.backends]
    return JSONResponse({pid: backend_router.is_provider_enabled(pid) for pid in known})


@app.post("/api/providers")
async def provider_status(request: Request):
    if not backend_router:
        return _not_ready("Backend router")
    body = await _read_json(request)
    provider_id = body.get("providerId") if isinstance(body, dict) else None
    if not provider_id:
        return _missing("Provider ID")
    return JSONResponse({
        "providerId": provider_id,
        "enabled": backend_router.is_provider_enabled(provider_id),
    })


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@app.post("/api/search")
async def search(request: Request):
    if not tool_registry:
        return _not_ready("Tools")
    data, err = _validate(SearchRequest, await _read_json(request), "search request")
    if err:
        return err

    result = await asyncio.to_thread(
        tool_registry.run_tool, SEARCH, data.query,
        max_results=data.max_results,
        search_depth=data.search_depth,
        include_domains=data.include_domains,
        exclude_domains=data.exclude_domains,
    )
    if not result.ok:
        return JSONResponse(result.to_dict(), status_code=500)
    _record_search(data.user_id, data.query, len(result.results), data.search_depth, "web")
    return JSONResponse(result.to_dict())


@app.post("/api/retrieve")
async def retrieve(request: Request):
    if not tool_registry:
        return _not_ready("Tools")
    data, err = _validate(RetrieveRequest, await _read_json(request), "retrieve request")
    if err:
        return err

    result = await asyncio.to_thread(tool_registry.run_tool, RETRIEVE, data.url)
    status = 200 if result.ok else 500
    return JSONResponse(result.to_dict(), status_code=status)


@app.post("/api/video-search")
async def video_search(request: Request):
    if not tool_registry:
        return _not_ready("Tools")
    data, err = _validate(VideoSearchRequest, await _read_json(request), "video search request")
    if err:
        return err

    result = await asyncio.to_thread(tool_registry.run_tool, VIDEO_SEARCH, data.query)
    if not result.ok:
        return JSONResponse(result.to_dict(), status_code=500)
    _record_search(data.user_id, data.query, len(result.results), "serper", "video")
    return JSONResponse(result.to_dict())


# ---------------------------------------------------------------------------
# Search history
# ---------------------------------------------------------------------------

@app.get("/api/search-history")
async def search_history(userId: str | None = None, limit: int = 50, offset: int = 0):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    return JSONResponse(sqlite_store.get_search_history(userId, limit=limit, offset=offset))


@app.post("/api/search-history")
async def search_history_add(request: Request, userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    data, err = _validate(SearchHistoryEntry, await _read_json(request), "search history data")
    if err:
        return err
    entry = sqlite_store.add_search_history(
        userId, data.query,
        results=data.results or 0,
        source=data.source,
        timestamp=data.timestamp,
    )
    return JSONResponse(entry)


@app.delete("/api/search-history")
async def search_history_clear(userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    removed = sqlite_store.clear_search_history(userId)
    return JSONResponse({"success": True, "deleted": removed})


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@app.get("/api/users")
async def user_get(id: str | None = None):
    if not id:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    user = sqlite_store.get_user(id)
    if user is None:
        return JSONResponse({"error": "User not found"}, status_code=404)
    return JSONResponse(user)


@app.post("/api/users")
async def user_save(request: Request):
    if not sqlite_store:
        return _not_ready("Storage")
    data, err = _validate(UserIn, await _read_json(request), "user data")
    if err:
        return err
    prefs = dump(data.preferences) if data.preferences else None
    user = sqlite_store.save_user(data.name, data.email, user_id=data.id, preferences=prefs)
    return JSONResponse(user)


@app.delete("/api/users")
async def user_delete(id: str | None = None):
    if not id:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    if not sqlite_store.delete_user(id):
        return JSONResponse({"error": "User not found"}, status_code=404)
    return JSONResponse({"success": True})


@app.get("/api/users/preferences")
async def preferences_get(userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    prefs = sqlite_store.get_preferences(userId)
    if prefs is None:
        return JSONResponse({"error": "User not found"}, status_code=404)
    return JSONResponse(prefs)


@app.patch("/api/users/preferences")
async def preferences_update(request: Request, userId: str | None = None):
    if not userId:
        return _missing("User ID")
    if not sqlite_store:
        return _not_ready("Storage")
    data, err = _validate(Preferences, await _read_json(request), "preferences data")
    if err:
        return err
    prefs = sqlite_store.update_preferences(userId, dump(data, partial=True))
    if prefs is None:
        return JSONResponse({"error": "User not found"}, status_code=404)
    return JSONResponse(prefs)


# ---------------------------------------------------------------------------
# Thai enhancement
# ---------------------------------------------------------------------------

@app.post("/api/enhance-thai")
async def enhance_thai(request: Request):
    if not enhancer or not enhancer.configured:
        return _not_ready("Thai enhancement")
    data, err = _validate(EnhanceRequest, await _read_json(request), "enhance request")
    if err:
        return err
    try:
        enhanced = await enhancer.enhance(data.text)
    except EnhanceError as e:
        return JSONResponse({"message": "Enhancement failed", "error": str(e)}, status_code=500)
    return JSONResponse({"enhancedText": enhanced})


# ---------------------------------------------------------------------------
# Config, health, stats
# ---------------------------------------------------------------------------

@app.get("/api/config")
async def api_config():
    """
    Effective settings: config.yaml values with runtime_config.yaml overrides.
    API keys are redacted.
    """
    cfg = get_config()
    rt = get_runtime_config()
    chat_cfg = cfg.get("chat", {})
    tools_cfg = cfg.get("tools", {})

    return JSONResponse({
        "chat": {
            "default_model":   rt.get("default_model") or chat_cfg.get("default_model", ""),
            "rollback_policy": rt.get("rollback_policy") or chat_cfg.get("rollback_policy", "full"),
            "history_enabled": rt.get("history_enabled", chat_cfg.get("history_enabled", True)),
        },
        "tools": {
            "enabled":        tools_cfg.get("enabled", True),
            "search_enabled": rt.get("search_enabled", tools_cfg.get("search_enabled", True)),
            "registered":     tool_registry.list_tools() if tool_registry else [],
        },
        "backends": [
            {k: ("***redacted***" if "key" in k.lower() else v) for k, v in b.items()}
            for b in cfg.get("backends", [])
        ],
        "storage": {
            "sqlite_path": cfg.get("storage", {}).get("sqlite_path", ""),
        },
        "logging": {
            "level": rt.get("log_level") or cfg.get("logging", {}).get("level", "INFO"),
        },
        "runtime": rt,
    })


@app.post("/api/config")
async def api_config_save(request: Request):
    """
    Save runtime-adjustable settings to runtime_config.yaml.
    Accepted keys: default_model, rollback_policy, history_enabled,
    log_level, search_enabled.
    """
    body = await _read_json(request)
    if not isinstance(body, dict):
        return JSONResponse({"error": "invalid JSON"}, status_code=400)

    if "rollback_policy" in body and body["rollback_policy"] not in ROLLBACK_POLICIES:
        return JSONResponse(
            {"error": f"rollback_policy must be one of {list(ROLLBACK_POLICIES)}"},
            status_code=400,
        )

    updated = []
    errors = []
    for key in RUNTIME_KEYS:
        if key in body:
            if update_runtime_config(key, body[key]):
                updated.append(key)
            else:
                errors.append(key)

    if "log_level" in updated:
        level = getattr(logging, str(body["log_level"]).upper(), None)
        if isinstance(level, int):
            logging.getLogger().setLevel(level)
    if sessions and pipeline:
        _apply_runtime_settings()

    if errors:
        return JSONResponse({"saved": updated, "errors": errors}, status_code=207)
    return JSONResponse({"saved": updated, "ok": True})


@app.get("/api/health")
async def health():
    backends = await backend_router.health() if backend_router else {}
    return JSONResponse({
        "status": "ok",
        "version": __version__,
        "backends": backends,
    })


@app.get("/api/stats")
async def stats():
    """Return storage and session statistics."""
    if not sqlite_store:
        return _not_ready("Storage")
    return JSONResponse({
        "storage": sqlite_store.get_stats(),
        "open_sessions": len(sessions) if sessions else 0,
        "tools": tool_registry.list_tools() if tool_registry else [],
    })
