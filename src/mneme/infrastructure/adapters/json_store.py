"""
JSON Card Store: Infrastructure adapter for the editor plugin's data file.

The document keeps the plugin's layout so existing data files load as-is:

    {"settings": {...},
     "notes": {"<note path>": {"cards": {"<id>": {...}}, "data": {...}}},
     "occlusion": {...}}

Keys this adapter does not own (settings, occlusion, per-note data) are
carried through unchanged on every write.
"""

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from mneme.domain.constants import DEFAULT_EF
from mneme.domain.errors import PersistenceError
from mneme.domain.models import CardRecord, CardState, RatingEntry
from mneme.domain.ports import CardStore

logger = logging.getLogger(__name__)

NO_NOTE_KEY = ""


def format_timestamp(dt: datetime) -> str:
    """UTC ISO-8601 with a Z suffix, milliseconds unless finer precision is present."""
    dt = as_utc(dt)
    timespec = "milliseconds" if dt.microsecond % 1000 == 0 else "microseconds"
    return dt.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class RatingEntryPayload(BaseModel):
    timestamp: datetime
    ef: float
    rating: int

    @field_validator("timestamp", mode="after")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_serializer("timestamp")
    def _ser_timestamp(self, v: datetime) -> str:
        return format_timestamp(v)


class CardPayload(BaseModel):
    """One card as it appears under ``notes.<path>.cards.<id>``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    card_uuid: str = Field(alias="cardUUID")
    card_content: str = Field(default="", alias="cardContent")
    card_title: str | None = Field(default=None, alias="cardTitle")
    line: int | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")

    repetition: int = 0
    interval: int = 0
    ef: float = DEFAULT_EF
    last_review_date: datetime = Field(alias="lastReviewDate")
    next_review_date: datetime | None = Field(default=None, alias="nextReviewDate")
    active: bool = True
    is_learning: bool = Field(default=False, alias="isLearning")
    learning_step: int | None = Field(default=None, alias="learningStep")
    ef_history: list[RatingEntryPayload] = Field(default_factory=list, alias="efHistory")

    @field_validator("created_at", "last_review_date", "next_review_date", mode="after")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None

    @field_serializer("created_at", "last_review_date", "next_review_date")
    def _ser_dates(self, v: datetime | None) -> str | None:
        return format_timestamp(v) if v is not None else None

    @classmethod
    def from_record(cls, record: CardRecord) -> "CardPayload":
        s = record.state
        return cls(
            card_uuid=record.card_id,
            card_content=record.content,
            card_title=record.title,
            line=record.line,
            created_at=record.created_at,
            repetition=s.repetition,
            interval=s.interval,
            ef=s.ef,
            last_review_date=s.last_review_date,
            next_review_date=s.next_review_date,
            active=s.active,
            is_learning=s.is_learning,
            learning_step=s.learning_step,
            ef_history=[
                RatingEntryPayload(timestamp=e.timestamp, ef=e.ef, rating=e.rating)
                for e in s.rating_history
            ],
        )

    def to_record(self, note_path: str | None) -> CardRecord:
        state = CardState(
            repetition=self.repetition,
            interval=self.interval,
            ef=self.ef,
            last_review_date=self.last_review_date,
            next_review_date=self.next_review_date,
            active=self.active,
            is_learning=self.is_learning,
            learning_step=self.learning_step,
            rating_history=tuple(
                RatingEntry(timestamp=e.timestamp, ef=e.ef, rating=e.rating)
                for e in self.ef_history
            ),
        )
        return CardRecord(
            card_id=self.card_uuid,
            state=state,
            created_at=self.created_at or self.last_review_date,
            note_path=note_path,
            content=self.card_content,
            title=self.card_title,
            line=self.line,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class JsonCardStore(CardStore):
    """
    Card store backed by a single JSON document on disk.

    The document is loaded on first use and written back atomically after
    every change.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._doc: dict[str, Any] | None = None
        self._index: dict[str, str] = {}  # card_id -> note key
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # CardStore
    # ------------------------------------------------------------------

    async def get(self, card_id: str) -> CardRecord | None:
        doc = self._load()
        note_key = self._index.get(card_id)
        if note_key is None:
            return None
        raw = _cards(doc["notes"][note_key])[card_id]
        return self._decode(card_id, raw, note_key)

    async def put(self, record: CardRecord) -> None:
        async with self._write_lock:
            doc = self._load()
            note_key = record.note_path or NO_NOTE_KEY
            notes = dict(doc["notes"])

            old_key = self._index.get(record.card_id)
            if old_key is not None and old_key != note_key:
                old_note = _copy_note(notes[old_key])
                del old_note["cards"][record.card_id]
                notes[old_key] = old_note

            note = _copy_note(notes.get(note_key))
            note["cards"][record.card_id] = CardPayload.from_record(record).to_json()
            notes[note_key] = note

            self._commit({**doc, "notes": notes})
            self._index[record.card_id] = note_key

    async def delete(self, card_id: str) -> bool:
        async with self._write_lock:
            doc = self._load()
            note_key = self._index.get(card_id)
            if note_key is None:
                return False

            notes = dict(doc["notes"])
            note = _copy_note(notes[note_key])
            del note["cards"][card_id]
            notes[note_key] = note

            self._commit({**doc, "notes": notes})
            del self._index[card_id]
            logger.info(f"[json] removed {card_id} from '{note_key}'")
            return True

    async def list_records(self) -> list[CardRecord]:
        doc = self._load()
        return [
            self._decode(card_id, raw, note_key)
            for note_key, note in doc["notes"].items()
            for card_id, raw in _cards(note).items()
        ]

    # ------------------------------------------------------------------
    # Settings passthrough
    # ------------------------------------------------------------------

    def settings(self) -> dict[str, Any]:
        """The plugin settings block stored alongside the cards."""
        return dict(self._load().get("settings") or {})

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if self._doc is not None:
            return self._doc

        if not self.path.exists():
            logger.debug(f"[json] {self.path} does not exist yet; starting empty")
            doc: dict[str, Any] = {}
        else:
            try:
                doc = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.error(f"Failed to read card store {self.path}: {e}")
                raise PersistenceError(self.path, f"unreadable: {e}") from e

        if not isinstance(doc, dict):
            raise PersistenceError(self.path, "top-level JSON value is not an object")

        notes = doc.setdefault("notes", {})
        if not isinstance(notes, dict):
            raise PersistenceError(self.path, "'notes' is not an object")

        index: dict[str, str] = {}
        for note_key, note in notes.items():
            for card_id in _cards(note):
                index[card_id] = note_key

        self._doc = doc
        self._index = index
        logger.debug(f"[json] loaded {len(index)} cards from {self.path}")
        return doc

    def _commit(self, doc: dict[str, Any]) -> None:
        """Write ``doc`` and make it the cached document. The cache is untouched on failure."""
        self._save(doc)
        self._doc = doc

    def _save(self, doc: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(doc, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to write card store {self.path}: {e}")
            raise PersistenceError(self.path, f"unwritable: {e}") from e

    def _decode(self, card_id: str, raw: dict[str, Any], note_key: str) -> CardRecord:
        try:
            payload = CardPayload.model_validate({"cardUUID": card_id, **raw})
        except ValidationError as e:
            raise PersistenceError(self.path, f"malformed card in '{note_key}': {e}") from e
        return payload.to_record(note_key or None)


def _empty_note() -> dict[str, Any]:
    return {"cards": {}, "data": {"noteVisitLog": []}}


def _cards(note: dict[str, Any] | None) -> dict[str, Any]:
    # Notes saved as null hold no cards.
    return (note or {}).get("cards") or {}


def _copy_note(note: dict[str, Any] | None) -> dict[str, Any]:
    """Shallow copy of a note with its own cards mapping."""
    copied = dict(note) if note else _empty_note()
    copied["cards"] = dict(_cards(note))
    return copied
