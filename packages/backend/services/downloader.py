"""Model download manager.

Streams a catalog model's weight file into the models directory. Bytes are
written to <filename>.part and renamed into place only after the transfer
completes, so a listing never sees a half-written model.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path

import httpx

from core.exceptions import ModelIOError, ModelNotFoundError, UpstreamStatusError
from core.interfaces import DownloadProgress, ProgressCallback
from core.model_catalog import find_by_name

from .model_store import PART_SUFFIX, ModelStore

logger = logging.getLogger(__name__)


class ModelDownloader:
    """Downloads catalog models over HTTP with throttled progress reports."""

    def __init__(
        self,
        store: ModelStore,
        client: httpx.Client,
        chunk_size: int = 256 * 1024,
        progress_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the downloader.

        Args:
            store: Model storage the file lands in
            client: HTTP client; must not have a read timeout
            chunk_size: Bytes per read
            progress_interval: Minimum seconds between "downloading" reports
            clock: Monotonic time source
        """
        self._store = store
        self._client = client
        self._chunk_size = chunk_size
        self._progress_interval = progress_interval
        self._clock = clock

    def download(self, name: str, on_progress: ProgressCallback | None = None) -> Path:
        """Download a model by catalog name.

        Progress is reported once at start (0/0), at most every
        progress_interval seconds while streaming, and once at completion.
        No retry is attempted.

        Returns:
            Path of the finished model file

        Raises:
            ModelNotFoundError: Unknown model or no download source
            UpstreamStatusError: Source answered with a non-200 status
            ModelIOError: Directory or file could not be written
            httpx.HTTPError: Network failure
        """
        entry = find_by_name(name)
        if entry is None:
            raise ModelNotFoundError(f"Model {name!r} not found in catalog")

        url = entry.source_url
        if not url:
            raise ModelNotFoundError(f"Model {name!r} has no download URL")

        def report(status: str, completed: int, total: int) -> None:
            if on_progress is not None:
                on_progress(DownloadProgress(status=status, completed=completed, total=total))

        self._store.ensure_directory()
        dest = self._store.models_dir / entry.filename
        tmp_dest = dest.with_name(dest.name + PART_SUFFIX)

        logger.info("Downloading %s from %s", entry.name, url)
        report("starting download", 0, 0)

        completed = 0
        total = 0
        finished = False
        try:
            with self._client.stream("GET", url, follow_redirects=True) as resp:
                if resp.status_code != 200:
                    resp.read()
                    raise UpstreamStatusError(resp.status_code, resp.text.strip(), url)

                content_length = resp.headers.get("content-length")
                if content_length and content_length.isdigit():
                    total = int(content_length)

                last_report = self._clock()
                with open(tmp_dest, "wb") as f:
                    for chunk in resp.iter_bytes(chunk_size=self._chunk_size):
                        f.write(chunk)
                        completed += len(chunk)

                        now = self._clock()
                        if now - last_report >= self._progress_interval:
                            report("downloading", completed, total)
                            last_report = now

            # Rename .part -> final filename
            tmp_dest.replace(dest)
            finished = True
        except OSError as e:
            raise ModelIOError(f"Failed to store {entry.filename}: {e}") from e
        finally:
            if not finished:
                tmp_dest.unlink(missing_ok=True)
                logger.warning("Download of %s failed after %d bytes", entry.name, completed)

        final_total = total or completed
        report("success", final_total, final_total)
        logger.info("Downloaded %s (%d bytes) to %s", entry.name, completed, dest)
        return dest
