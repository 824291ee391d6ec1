"""
Loaders that put a layer's raw file at a local path.

Remote layers are GeoJSON or GeoTIFF files served over HTTP(S). Local
`file` sources need no loader; the pipeline reads them in place.
"""

import os
import logging
from abc import ABC, abstractmethod

import requests

from .sources import LayerSource


logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 60
CHUNK_SIZE = 64 * 1024


def _ensure_parent(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)


class BaseLoader(ABC):
    """Writes the raw data of a LayerSource to a file"""

    @abstractmethod
    def load(self, source: LayerSource, target_path: str) -> bool:
        """Write the source's data to target_path; False on any failure"""


class HTTPLoader(BaseLoader):
    """Streams a remote layer to disk through a ``.part`` file"""

    def __init__(self, timeout: float = REQUEST_TIMEOUT_S, chunk_size: int = CHUNK_SIZE):
        self.timeout = timeout
        self.chunk_size = chunk_size

    def load(self, source: LayerSource, target_path: str) -> bool:
        if not source.url:
            logger.error(f"{source.name} has no URL to download from")
            return False

        _ensure_parent(target_path)
        part_path = target_path + ".part"
        logger.info(f"Requesting {source.url} for {source.name}")
        try:
            response = requests.get(source.url, stream=True, timeout=self.timeout)
            response.raise_for_status()
            written = self._stream_to(response, part_path)
        except (requests.RequestException, OSError) as e:
            logger.error(f"Download of {source.name} failed: {e}")
            if os.path.exists(part_path):
                os.remove(part_path)
            return False

        os.replace(part_path, target_path)
        logger.info(f"Saved {written} bytes of {source.name} to {target_path}")
        return True

    def _stream_to(self, response, path: str) -> int:
        written = 0
        with open(path, 'wb') as fh:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if chunk:
                    fh.write(chunk)
                    written += len(chunk)
        return written


class LoaderFactory:
    """Picks a loader from a LayerSource's source_type"""

    _loaders = {
        'http': HTTPLoader,
        'https': HTTPLoader,
    }

    @classmethod
    def get_loader(cls, source_type: str) -> BaseLoader:
        loader_class = cls._loaders.get(source_type.lower())
        if not loader_class:
            raise ValueError(f"No loader available for source type: {source_type}")
        return loader_class()

    @classmethod
    def for_source(cls, source: LayerSource) -> BaseLoader:
        return cls.get_loader(source.source_type)
