"""
Conditional HTTP fetch of Terviseamet feeds with change detection.

Per feed the fetcher:
1. Gates the check by the feed kind's refresh interval (unless forced)
2. Sends ``If-None-Match`` / ``If-Modified-Since`` from the stored state
3. Refuses redirects, unexpected statuses, foreign content types and
   bodies over the byte cap
4. Hashes the body and compares it with the stored hash
5. Persists ``SourceSyncState`` on every branch except an interval skip
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple
import asyncio
import enum
import hashlib
import logging

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import ensure_utc, utcnow
from core.exceptions import (
    FetchError,
    NetworkError,
    PersistenceError,
    ProtocolError,
    ResponseTooLargeError,
)
from ingestion.feeds import FeedDescriptor, refresh_interval
from models.source_sync_state import SourceSyncState

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"text/plain", "application/octet-stream"})


class FetchStatus(str, enum.Enum):
    CHANGED = "changed"
    NOT_MODIFIED = "not_modified"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class FetchOutcome:
    status: FetchStatus
    xml: Optional[bytes] = None
    error: Optional[str] = None
    status_code: Optional[int] = None


def is_allowed_content_type(content_type: Optional[str]) -> bool:
    """XML, plain text or octet-stream; a missing header is accepted."""
    if not content_type:
        return True
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime.endswith("/xml") or mime.endswith("+xml") or mime in ALLOWED_CONTENT_TYPES


def content_hash(body: bytes) -> str:
    return hashlib.sha256(body).hexdigest()


class ConditionalFetcher:
    """
    Downloads one feed at a time through a shared ``httpx.AsyncClient``.

    The client must be created with ``follow_redirects=False``; any 3xx
    other than 304 is reported as an error.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: httpx.AsyncClient,
        timeout_seconds: float = 20.0,
        max_bytes: int = 10 * 1024 * 1024,
    ):
        self.db = db_session
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes

    async def get_state(self, descriptor: FeedDescriptor) -> Optional[SourceSyncState]:
        result = await self.db.execute(
            select(SourceSyncState).where(
                SourceSyncState.file_kind == descriptor.file_kind,
                SourceSyncState.year == descriptor.year,
            )
        )
        return result.scalar_one_or_none()

    async def fetch_if_changed(
        self,
        descriptor: FeedDescriptor,
        force: bool = False,
        now: Optional[datetime] = None,
    ) -> FetchOutcome:
        """
        Check one feed and classify the result.

        Network and protocol failures come back as an ERROR outcome;
        only a failure to persist the sync state raises.
        """
        now = now or utcnow()
        state = await self.get_state(descriptor)

        if not force and state is not None and state.last_checked_at is not None:
            elapsed = now - ensure_utc(state.last_checked_at)
            if elapsed < refresh_interval(descriptor.file_kind, now):
                logger.debug(
                    f"Skipping {descriptor.file_kind.value}/{descriptor.year}: checked {elapsed} ago"
                )
                return FetchOutcome(FetchStatus.SKIPPED)

        if state is None:
            state = SourceSyncState(
                file_kind=descriptor.file_kind,
                year=descriptor.year,
                url=descriptor.url,
            )
            self.db.add(state)

        headers = self._conditional_headers(state, descriptor)
        state.url = descriptor.url
        state.last_checked_at = now

        try:
            status_code, response_headers, body = await asyncio.wait_for(
                self._download(descriptor, headers),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            error = NetworkError(
                f"Timed out after {self.timeout_seconds}s",
                context={"url": descriptor.url, "file_kind": descriptor.file_kind.value, "year": descriptor.year},
                original_exception=e,
            )
            return await self._record_error(state, descriptor, error)
        except FetchError as e:
            return await self._record_error(state, descriptor, e)

        state.last_status_code = status_code
        state.last_error = None

        if status_code == 304:
            outcome = FetchOutcome(FetchStatus.NOT_MODIFIED, status_code=status_code)
        elif status_code == 404:
            outcome = FetchOutcome(FetchStatus.NOT_FOUND, status_code=status_code)
        else:
            digest = content_hash(body)
            state.etag = response_headers.get("etag")
            state.last_modified = response_headers.get("last-modified")
            state.content_length = len(body)
            if digest != state.content_hash:
                state.content_hash = digest
                state.last_changed_at = now
                outcome = FetchOutcome(FetchStatus.CHANGED, xml=body, status_code=status_code)
            else:
                outcome = FetchOutcome(FetchStatus.NOT_MODIFIED, status_code=status_code)

        await self._commit(descriptor)
        logger.info(
            f"Feed {descriptor.file_kind.value}/{descriptor.year}: {outcome.status.value} "
            f"(HTTP {status_code})"
        )
        return outcome

    async def invalidate(self, descriptor: FeedDescriptor, error: str) -> None:
        """
        Forget the stored validators so the next check re-downloads.

        Used when a changed feed was fetched but could not be imported;
        otherwise the next run would see NotModified and never retry.
        """
        state = await self.get_state(descriptor)
        if state is None:
            return
        state.etag = None
        state.last_modified = None
        state.content_hash = None
        state.last_error = error
        await self._commit(descriptor)

    @staticmethod
    def _conditional_headers(state: SourceSyncState, descriptor: FeedDescriptor) -> Dict[str, str]:
        # Validators belong to the old URL when the feed moved
        if state.url != descriptor.url:
            return {}
        headers = {}
        if state.etag:
            headers["If-None-Match"] = state.etag
        if state.last_modified:
            headers["If-Modified-Since"] = state.last_modified
        return headers

    async def _download(
        self,
        descriptor: FeedDescriptor,
        headers: Dict[str, str],
    ) -> Tuple[int, httpx.Headers, Optional[bytes]]:
        context = {"url": descriptor.url, "file_kind": descriptor.file_kind.value, "year": descriptor.year}

        try:
            async with self.client.stream("GET", descriptor.url, headers=headers) as response:
                status_code = response.status_code
                if status_code in (304, 404):
                    return status_code, response.headers, None

                if 300 <= status_code < 400:
                    raise ProtocolError(
                        "Redirects are not followed",
                        context={**context, "location": response.headers.get("location")},
                        status_code=status_code,
                    )
                if not 200 <= status_code < 300:
                    raise ProtocolError(f"Unexpected HTTP status {status_code}", context=context, status_code=status_code)

                content_type = response.headers.get("content-type")
                if not is_allowed_content_type(content_type):
                    raise ProtocolError(
                        f"Disallowed content type {content_type!r}",
                        context={**context, "content_type": content_type},
                        status_code=status_code,
                    )

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise ResponseTooLargeError(
                        f"Declared Content-Length {declared} exceeds {self.max_bytes} bytes",
                        context=context,
                        status_code=status_code,
                    )

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > self.max_bytes:
                        raise ResponseTooLargeError(
                            f"Response body exceeds {self.max_bytes} bytes",
                            context=context,
                            status_code=status_code,
                        )

                return status_code, response.headers, bytes(body)

        except httpx.InvalidURL as e:
            raise ProtocolError(f"Invalid feed URL: {e}", context=context, original_exception=e)
        except httpx.RequestError as e:
            raise NetworkError(f"Request failed: {e}", context=context, original_exception=e)

    async def _record_error(
        self,
        state: SourceSyncState,
        descriptor: FeedDescriptor,
        error: FetchError,
    ) -> FetchOutcome:
        status_code = getattr(error, "status_code", None)
        state.last_status_code = status_code
        state.last_error = f"{type(error).__name__}: {error.message}"
        await self._commit(descriptor)

        logger.warning(
            f"Feed {descriptor.file_kind.value}/{descriptor.year} failed: {error.message}",
            extra={"error_context": error.to_dict()},
        )
        return FetchOutcome(FetchStatus.ERROR, error=state.last_error, status_code=status_code)

    async def _commit(self, descriptor: FeedDescriptor) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to persist source sync state",
                context={"file_kind": descriptor.file_kind.value, "year": descriptor.year, "operation": "UPSERT"},
                original_exception=e,
            )
