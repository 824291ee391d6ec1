import os
import json
import time
import hashlib
import logging
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import portalocker

logger = logging.getLogger(__name__)

CACHE_ENV_VAR = "SITING_DATA_CACHE"
LOCK_TIMEOUT_S = 600


def _default_root() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "raw_cache"


def _is_complete(path: Path) -> bool:
    return path.exists() and path.stat().st_size > 0


class RawDownloadCache:
    """Raw files for remote layers and rasters, shared across runs and processes.

    Files are keyed by source name and a 16 character SHA-256 prefix of the
    URL, so the same URL is fetched once no matter how many pipelines ask
    for it. Writers are serialised with a portalocker lock next to the file.
    """

    def __init__(self, root_dir: Optional[str] = None):
        root = root_dir or os.getenv(CACHE_ENV_VAR) or _default_root()
        self.root_dir = Path(root).expanduser().resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Raw layer cache at %s", self.root_dir)

    def target_path(self, url: str, source_name: str) -> Path:
        """Where the raw file for *url* lives in the cache."""
        filename = unquote(Path(urlparse(url).path).name) or "data"
        url_key = hashlib.sha256(url.encode()).hexdigest()[:16]
        folder = self.root_dir / source_name.replace(" ", "_") / url_key
        folder.mkdir(parents=True, exist_ok=True)
        return folder / filename

    def cached_path(self, url: str, source_name: str) -> Optional[str]:
        """Path of an already downloaded file, without fetching anything."""
        path = self.target_path(url, source_name)
        return str(path) if _is_complete(path) else None

    def ensure(self, url: str, source_name: str, download_fn: Callable[[str], bool]) -> Optional[str]:
        """
        Local path for *url*, calling ``download_fn(path)`` only on a cache miss.

        ``download_fn`` writes the file and returns True on success. A failed
        download leaves nothing behind, so the next call tries again.
        Returns None when the download fails or the lock times out.
        """
        cached = self.cached_path(url, source_name)
        if cached:
            return cached

        dest = self.target_path(url, source_name)
        try:
            with portalocker.Lock(str(dest) + ".lock", timeout=LOCK_TIMEOUT_S):
                # a concurrent writer may have finished first
                if _is_complete(dest):
                    return str(dest)
                return self._fetch(url, source_name, dest, download_fn)
        except portalocker.exceptions.LockException as exc:
            logger.error("Gave up waiting for the download lock on %s: %s", dest, exc)
            return None

    def _fetch(self, url: str, source_name: str, dest: Path,
               download_fn: Callable[[str], bool]) -> Optional[str]:
        logger.info("Fetching raw data for %s into %s", source_name, dest)
        if not download_fn(str(dest)) or not dest.exists():
            logger.error("Download of %s failed", url)
            self._discard(dest)
            return None
        self._write_meta(url, source_name, dest)
        return str(dest)

    @staticmethod
    def _discard(dest: Path) -> None:
        try:
            dest.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove partial download %s: %s", dest, exc)

    @staticmethod
    def _write_meta(url: str, source_name: str, dest: Path) -> None:
        meta = {
            "url": url,
            "source": source_name,
            "downloaded_at": int(time.time()),
            "size_bytes": dest.stat().st_size,
        }
        try:
            Path(str(dest) + ".meta.json").write_text(json.dumps(meta), encoding="utf-8")
        except OSError as exc:
            logger.debug("No metadata written for %s: %s", dest, exc)

    def evict(self, url: str, source_name: str) -> bool:
        """Drop the cached file for *url*. Returns True when something was removed."""
        dest = self.target_path(url, source_name)
        removed = dest.exists()
        for path in (dest, Path(str(dest) + ".meta.json")):
            self._discard(path)
        if removed:
            logger.info("Evicted cached %s for %s", dest.name, source_name)
        return removed
