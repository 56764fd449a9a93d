"""SwipeTree - Family Tree Navigator Backend.

FastAPI server exposing swipe navigation sessions over a photo-per-person
family tree, plus the label-commit endpoint used by the soft-edit UI.
"""

import logging
import uuid
from contextlib import asynccontextmanager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("swipetree")

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from config import load_navigation_config, load_service_settings
from gestures import Gesture
from id_utils import (
    MalformedIdError,
    children_ids,
    parent_id,
    parse_id,
    sibling_ids,
    spouse_ids,
    start_id_from_url,
)
from metadata_store import JsonFileStorage, LabelMeta, MetadataStore
from navigation import NavigationEngine
from sessions import SessionStore
from tools import ImageProbe, LabelCommitClient, LabelCommitError

nav_config = load_navigation_config()
settings = load_service_settings()

# Global state
http_client: httpx.AsyncClient | None = None
image_probe: ImageProbe | None = None
metadata_store: MetadataStore | None = None
commit_client: LabelCommitClient | None = None
sessions = SessionStore(max_size=settings.max_sessions, idle_seconds=settings.session_idle_seconds)


def build_services(client: httpx.AsyncClient | None = None) -> None:
    """Create the probe, metadata store and commit client."""
    global image_probe, metadata_store, commit_client

    image_probe = ImageProbe(nav_config, client=client)
    if settings.commit_configured:
        commit_client = LabelCommitClient(
            settings.github_token,
            settings.repo,
            branch=settings.branch,
            path=settings.labels_path,
            client=client,
        )
    else:
        logger.warning("GITHUB_TOKEN or REPO not set, label commits disabled")
        commit_client = None

    storage = JsonFileStorage(settings.metadata_path) if settings.metadata_path else {}
    metadata_store = MetadataStore(storage, namespace=nav_config.metadata_namespace, remote=commit_client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - open and close the shared HTTP client."""
    global http_client
    logger.info("Starting SwipeTree backend...")
    http_client = httpx.AsyncClient(follow_redirects=True)
    build_services(http_client)
    logger.info(f"✓ Probing images at {nav_config.images_base_url}")

    if commit_client is not None:
        try:
            added = await metadata_store.refresh_from_remote()
            logger.info(f"✓ Loaded {added} labels from {settings.repo}")
        except LabelCommitError as e:
            logger.warning(f"Could not load remote labels: {e.message} ({e.status_code})")

    yield

    if http_client:
        logger.info("Closing HTTP client...")
        await http_client.aclose()
        http_client = None
        logger.info("✓ HTTP client closed")


# Create FastAPI app
app = FastAPI(
    title="SwipeTree",
    description="Swipe through a family tree where relationships live in the IDs",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS is restricted to the one configured origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.origin_allow],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# Request/Response models
class StartRequest(BaseModel):
    """Start a session from an explicit id or a URL carrying #id= / ?id=."""
    start_id: str | None = None
    url: str | None = None


class EditPayload(BaseModel):
    name: str | None = None
    dob: str | None = None


class GestureRequest(BaseModel):
    gesture: Gesture
    edit: EditPayload | None = None  # Soft-edit result for long-press


class SwipeRequest(BaseModel):
    dx: float
    dy: float


class TapRequest(BaseModel):
    id: str


class SaveLabelRequest(BaseModel):
    id: str | None = None
    meta: dict | None = None


class PresetEditor:
    """Soft-edit collaborator answering with a result the client already collected."""

    def __init__(self, result: EditPayload | None):
        self.result = result

    async def request_edit(self, person_id: str) -> LabelMeta | None:
        if self.result is None:
            return None
        return LabelMeta(name=self.result.name, dob=self.result.dob)


def _get_session(session_id: str) -> NavigationEngine:
    engine = sessions.get(session_id)
    if engine is None:
        logger.warning(f"Unknown session: {session_id}")
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return engine


def _require_services() -> None:
    if image_probe is None or metadata_store is None:
        build_services(http_client)


@app.exception_handler(LabelCommitError)
async def label_commit_error_handler(request: Request, exc: LabelCommitError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Endpoints

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "sessions": len(sessions),
        "label_commits": commit_client is not None,
    }


@app.post("/sessions")
async def start_session(request: StartRequest):
    """Create a navigation session anchored at the start id."""
    _require_services()

    start_id = (request.start_id or "").strip() or None
    if start_id is None and request.url:
        start_id = start_id_from_url(request.url)
    if not start_id:
        raise HTTPException(status_code=400, detail="A start id is required (start_id or url with id=)")

    try:
        engine = NavigationEngine(start_id, image_probe, metadata_store, config=nav_config)
    except MalformedIdError as e:
        raise HTTPException(status_code=400, detail=str(e))

    session_id = uuid.uuid4().hex
    sessions.add(session_id, engine)
    logger.info(f"Started session {session_id} at {start_id}")

    snapshot = await engine.start()
    return {"session_id": session_id, **snapshot}


@app.get("/sessions/{session_id}")
async def get_session(session_id: str):
    return _get_session(session_id).snapshot()


@app.delete("/sessions/{session_id}")
async def end_session(session_id: str):
    _get_session(session_id)
    sessions.remove(session_id)
    logger.info(f"Ended session {session_id}")
    return {"ok": True}


@app.post("/sessions/{session_id}/gesture")
async def gesture(session_id: str, request: GestureRequest):
    """Dispatch a classified gesture (up/down/left/right/back/long-press)."""
    engine = _get_session(session_id)
    editor = PresetEditor(request.edit) if request.gesture is Gesture.LONG_PRESS else None
    return await engine.handle_gesture(request.gesture, editor=editor)


@app.post("/sessions/{session_id}/swipe")
async def swipe(session_id: str, request: SwipeRequest):
    """Classify a raw finger displacement and dispatch it."""
    engine = _get_session(session_id)
    return await engine.handle_swipe(request.dx, request.dy)


@app.post("/sessions/{session_id}/tap")
async def tap(session_id: str, request: TapRequest):
    engine = _get_session(session_id)
    try:
        return await engine.tap_tile(request.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/ids/{raw_id}")
async def describe_id(raw_id: str):
    """Parsed form and unfiltered relationship candidates for an id."""
    width = nav_config.digit_width
    try:
        parsed = parse_id(raw_id, width)
    except MalformedIdError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "base_id": parsed.base_id,
        "is_spouse": parsed.is_spouse,
        "partner_hint": parsed.partner_hint,
        "parent": parent_id(raw_id, width),
        "children": children_ids(raw_id, width, nav_config.max_candidates),
        "siblings": sibling_ids(raw_id, width, nav_config.max_candidates),
        "spouses": spouse_ids(raw_id, width),
    }


@app.get("/artifact/{person_id}")
async def artifact(person_id: str):
    """Redirect to the first photograph URL that resolves for an id."""
    try:
        parse_id(person_id, nav_config.digit_width)
    except MalformedIdError as e:
        raise HTTPException(status_code=400, detail=str(e))

    _require_services()
    url = await image_probe.locate(person_id.strip())
    if url is None:
        raise HTTPException(status_code=404, detail=f"No photograph found for {person_id}")
    return RedirectResponse(url)


@app.options("/save-label")
async def save_label_options():
    return {"ok": True}


@app.post("/save-label")
async def save_label(request: SaveLabelRequest):
    """Merge {id: meta} into the label document in the images repository."""
    if commit_client is None:
        logger.error("Label commit requested but GITHUB_TOKEN or REPO is missing")
        return JSONResponse(status_code=500, content={"error": "Missing GITHUB_TOKEN or REPO env var"})
    if not request.id or request.meta is None:
        return JSONResponse(status_code=400, content={"error": "Missing id/meta"})

    logger.info(f"Saving label for {request.id}")
    return await commit_client.commit(request.id, request.meta)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
