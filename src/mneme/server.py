import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from mneme.application.config import resolve_config
from mneme.application.factory import get_card_store
from mneme.application.logging_config import setup_logging
from mneme.application.queue_builder import select_cards
from mneme.application.review_service import ReviewService
from mneme.application.stats import StatsService
from mneme.application.utils.text import make_tag_lookup
from mneme.consts import VERSION
from mneme.domain.errors import InvalidRating, MissingCardState, PersistenceError
from mneme.domain.models import CardRecord
from mneme.infrastructure.adapters.json_store import CardPayload

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("mneme.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if not hasattr(app.state, "service"):
        config = resolve_config()
        app.state.config = config
        # The server logs at INFO or finer
        setup_logging(max(config.verbose, 2), config.log_dir)
        app.state.service = ReviewService(get_card_store(config))
    logger.info(f"mneme server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("mneme server shutting down...")


app = FastAPI(
    title="mneme server",
    description="Review scheduling service for note flashcards.",
    version=VERSION,
    lifespan=lifespan,
)


def get_service(request: Request) -> ReviewService:
    return request.app.state.service


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _card_json(record: CardRecord) -> dict[str, Any]:
    return {"notePath": record.note_path, **CardPayload.from_record(record).to_json()}


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReviewRequest(BaseModel):
    quality: int


class RegisterRequest(BaseModel):
    note_path: str | None = None
    content: str
    card_id: str | None = None
    title: str | None = None
    line: int | None = None


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/cards/{card_id}")
async def get_card(card_id: str, service: ReviewService = Depends(get_service)):
    try:
        record = await service.get_card(card_id)
    except MissingCardState as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _card_json(record)


@app.post("/cards")
async def register_card(req: RegisterRequest, service: ReviewService = Depends(get_service)):
    try:
        record = await service.register_card(
            req.note_path, req.content, card_id=req.card_id, title=req.title, line=req.line
        )
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _card_json(record)


@app.post("/cards/{card_id}/review")
async def review_card(
    card_id: str, req: ReviewRequest, service: ReviewService = Depends(get_service)
):
    """
    Grade a card. Ratings outside 0..5 are rejected with 422.
    """
    logger.info(f"Review requested via API: {card_id} q={req.quality}")
    try:
        record = await service.submit_review(card_id, req.quality)
    except InvalidRating as e:
        raise HTTPException(status_code=422, detail=str(e))
    except MissingCardState as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Review failed: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=str(e))
    return _card_json(record)


@app.post("/cards/{card_id}/stop")
async def stop_card(card_id: str, service: ReviewService = Depends(get_service)):
    try:
        record = await service.stop_scheduling(card_id)
    except MissingCardState as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Stop failed: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=str(e))
    return _card_json(record)


@app.get("/queue")
async def get_queue(
    request: Request,
    mode: Literal["due", "scheduled", "note"] = "due",
    note: str | None = None,
    tag: str | None = None,
    search: str | None = None,
    service: ReviewService = Depends(get_service),
):
    """
    Cards for a review session. An empty list means nothing to review.
    """
    config = getattr(request.app.state, "config", None)
    vault_root = config.vault_root if config else None
    randomize = config.randomize if config else False

    try:
        records = await service.store.list_records()
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    cards = select_cards(
        records,
        mode,
        _now(),
        note_path=note,
        tag=tag,
        search=search,
        tags_for_note=make_tag_lookup(vault_root),
        randomize=randomize,
    )
    return {"count": len(cards), "cards": [_card_json(c) for c in cards]}


@app.get("/stats")
async def get_stats(service: ReviewService = Depends(get_service)):
    try:
        totals = await StatsService(service.store).collection_stats(_now())
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return asdict(totals)
