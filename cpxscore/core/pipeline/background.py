"""Best-effort persistence of derived artifacts outside the scoring path."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Set

from ...data.blobs import BlobStore
from ...data.models import ArtifactRegistration, ScoreReport
from ...data.storage import SessionStore
from ...logging import get_logger

LOGGER = get_logger(__name__)


class SessionContext:
    """Session identity for one run.

    The id may be replaced once, by the id the session store returns when it
    registers the first artifact; later differing ids are ignored.
    """

    def __init__(self, session_id: Optional[str] = None, origin: str = "SP") -> None:
        self._session_id = session_id
        self._adopted = False
        self.origin = origin

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def adopt(self, session_id: str) -> Optional[str]:
        if session_id == self._session_id:
            return self._session_id
        if self._adopted:
            LOGGER.warning(
                "Ignoring session id %s; run already bound to %s", session_id, self._session_id
            )
            return self._session_id
        if self._session_id is not None:
            LOGGER.info("Session %s replaced by %s", self._session_id, session_id)
        self._session_id = session_id
        self._adopted = True
        return self._session_id


class BackgroundUploader:
    """Fire-and-forget transcript uploads whose failures are only logged."""

    def __init__(
        self,
        blobs: BlobStore,
        store: Optional[SessionStore] = None,
        excerpt_chars: int = 200,
    ) -> None:
        self.blobs = blobs
        self.store = store
        self.excerpt_chars = excerpt_chars
        self.pending: Set[asyncio.Task] = set()
        self.scheduled: List[str] = []

    def schedule_background_upload(
        self,
        key: str,
        text: str,
        context: SessionContext,
        source: str = "UPLOAD",
    ) -> "asyncio.Task[Optional[ArtifactRegistration]]":
        task = asyncio.get_running_loop().create_task(
            self._upload(key, text, context, source), name=f"upload:{key}"
        )
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)
        self.scheduled.append(key)
        LOGGER.debug("Scheduled background upload of %s", key)
        return task

    async def _upload(
        self, key: str, text: str, context: SessionContext, source: str
    ) -> Optional[ArtifactRegistration]:
        try:
            await self.blobs.put_text(key, text)
            if self.store is None:
                return None
            registration = await asyncio.to_thread(
                self.store.register_artifact,
                context.session_id,
                "transcript",
                key,
                origin=context.origin,
                source=source,
                size_bytes=len(text.encode("utf-8")),
                text_excerpt=text[: self.excerpt_chars],
                text_length=len(text),
            )
        except Exception:
            LOGGER.exception("Background upload of transcript %s failed", key)
            return None
        context.adopt(registration.session_id)
        LOGGER.info("Stored transcript %s for session %s", key, registration.session_id)
        return registration

    async def drain(self) -> None:
        """Wait for every scheduled upload to settle."""

        if self.pending:
            await asyncio.gather(*list(self.pending), return_exceptions=True)


def score_report_key(origin: str, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat().replace(":", "-").replace(".", "-")
    return f"{origin}_structuredScore/{stamp}.json"


async def persist_score_report(
    report: ScoreReport,
    blobs: BlobStore,
    store: Optional[SessionStore],
    context: SessionContext,
    attempts: int = 3,
    retry_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> Optional[str]:
    """Archive a finished report and register it; returns the key or ``None``."""

    key = score_report_key(context.origin)
    body = report.model_dump_json(indent=2).encode("utf-8")
    for attempt in range(attempts):
        try:
            await blobs.put(key, body, content_type="application/json; charset=utf-8")
            if store is not None:
                registration = await asyncio.to_thread(
                    store.register_artifact,
                    context.session_id,
                    "score",
                    key,
                    origin=context.origin,
                    size_bytes=len(body),
                    total=report.total_points,
                )
                context.adopt(registration.session_id)
            return key
        except Exception as exc:
            LOGGER.warning("Score save attempt %d/%d failed: %s", attempt + 1, attempts, exc)
            if attempt < attempts - 1:
                await sleep(retry_delay * (attempt + 1))
    LOGGER.error("Score report could not be saved after %d attempts", attempts)
    return None


__all__ = [
    "BackgroundUploader",
    "SessionContext",
    "persist_score_report",
    "score_report_key",
]
