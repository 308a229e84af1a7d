"""Streaming HTTP download of the Joconde export.

The body is written to disk chunk by chunk and hashed on the way, so
nothing larger than one chunk is ever held in memory.  The response's
ETag / Last-Modified validators and the SHA-256 of the body are returned
so the orchestrator can tell whether the source changed since the last
accepted import.

No retries happen here; retry policy belongs to whoever schedules syncs.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from joconde_sync.utils.errors import DownloadError

logger = structlog.get_logger(logger_name=__name__)

_USER_AGENT = "joconde-sync/0.1.0"
_DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclass
class SourceValidators:
    """HTTP cache validators advertised for the source URL."""

    etag: str | None = None
    last_modified: str | None = None

    @property
    def fingerprint(self) -> str | None:
        if self.etag:
            return f"etag:{self.etag}"
        if self.last_modified:
            return f"last-modified:{self.last_modified}"
        return None


@dataclass
class DownloadResult:
    path: Path
    etag: str | None = None
    last_modified: str | None = None
    content_hash: str = ""
    bytes_written: int = 0
    completed: bool = True

    @property
    def validators(self) -> SourceValidators:
        return SourceValidators(etag=self.etag, last_modified=self.last_modified)

    @property
    def content_fingerprint(self) -> str:
        return f"sha256:{self.content_hash}"


class HttpDownloader:
    """Downloads a URL to a file with an injected ``httpx.AsyncClient``."""

    def __init__(self, http_client: httpx.AsyncClient, chunk_size: int = _DEFAULT_CHUNK_SIZE) -> None:
        self._http = http_client
        self._chunk_size = chunk_size

    async def head(self, url: str) -> SourceValidators:
        """Fetch the source's validators; empty validators when HEAD is unusable."""
        try:
            response = await self._http.head(
                url, headers={"User-Agent": _USER_AGENT}, follow_redirects=True
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("source_head_failed", url=url, error=str(exc))
            return SourceValidators()

        return SourceValidators(
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
        )

    async def download(
        self,
        url: str,
        destination: str | Path,
        cancel_event: asyncio.Event | None = None,
    ) -> DownloadResult:
        """Stream *url* into *destination*.

        Cancellation is checked after every chunk; a canceled download
        returns ``completed=False`` with whatever was written so far.

        Raises:
            DownloadError: HTTP error status, transport failure, or the
                destination could not be written.
        """
        target = Path(destination)
        digest = hashlib.sha256()
        written = 0

        logger.info("download_start", url=url, destination=str(target))
        try:
            async with self._http.stream(
                "GET", url, headers={"User-Agent": _USER_AGENT}, follow_redirects=True
            ) as response:
                response.raise_for_status()
                result = DownloadResult(
                    path=target,
                    etag=response.headers.get("etag"),
                    last_modified=response.headers.get("last-modified"),
                )
                with open(target, "wb") as out:
                    async for chunk in response.aiter_bytes(self._chunk_size):
                        out.write(chunk)
                        digest.update(chunk)
                        written += len(chunk)
                        if cancel_event is not None and cancel_event.is_set():
                            result.completed = False
                            break
        except httpx.HTTPStatusError as exc:
            raise DownloadError(
                message=f"HTTP {exc.response.status_code} while downloading {url}",
                source_name="httpx",
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadError(
                message=f"Transport error while downloading {url}: {exc}",
                source_name="httpx",
            ) from exc
        except OSError as exc:
            raise DownloadError(
                message=f"Cannot write {target}: {exc}",
                source_name=str(target),
            ) from exc

        result.content_hash = digest.hexdigest()
        result.bytes_written = written
        logger.info(
            "download_complete" if result.completed else "download_canceled",
            url=url,
            bytes=written,
            etag=result.etag,
        )
        return result
