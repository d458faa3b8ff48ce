"""
Content-addressed asset store.

Blobs are keyed by ``<md5 of bytes>.<extension>``; storing the same bytes
twice yields the same key and keeps one copy. The store never evicts.
"""
from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from ..errors import ResolutionFailure


logger = logging.getLogger(__name__)

# Fixed 1x1 transparent costume used when a target declares none
EMPTY_SVG = (
    '<svg version="1.1" xmlns="http://www.w3.org/2000/svg" '
    'xmlns:xlink="http://www.w3.org/1999/xlink" width="1" height="1">'
    '<rect width="1" height="1" fill="transparent"/></svg>'
)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class AssetRef:
    asset_id: str
    data_format: str

    @property
    def md5ext(self) -> str:
        return f"{self.asset_id}.{self.data_format}"

    @classmethod
    def parse(cls, key: str) -> 'AssetRef':
        asset_id, _, ext = key.rpartition(".")
        if not asset_id:
            raise ValueError(f"Invalid storage key: {key}")
        return cls(asset_id, ext)


def _extension(path: PathLike) -> str:
    return Path(path).suffix.lstrip(".").lower()


def _read(path: PathLike) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise ResolutionFailure(f"Cannot read asset: {e.strerror or e}", path=str(path)) from e


class ContentAddressedAssetStore:

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)

    def keys(self) -> List[str]:
        return list(self._blobs)

    def items(self) -> Iterator[Tuple[str, bytes]]:
        return iter(self._blobs.items())

    def store(self, data: bytes, extension: str) -> AssetRef:
        ref = AssetRef(hashlib.md5(data).hexdigest(), extension.lstrip(".").lower())
        if ref.md5ext not in self._blobs:
            self._blobs[ref.md5ext] = data
            logger.debug(f"Stored asset {ref.md5ext} ({len(data)} bytes)")
        return ref

    def store_file(self, path: PathLike) -> AssetRef:
        return self.store(_read(path), _extension(path))

    def store_files(self, paths: Sequence[PathLike], max_workers: Optional[int] = None) -> List[AssetRef]:
        """Read several files on a thread pool; results keep the order of ``paths``."""
        if not paths:
            return []
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(_read, p) for p in paths]
            # insert in declaration order so the table order is deterministic
            return [self.store(f.result(), _extension(p)) for f, p in zip(futures, paths)]

    def store_placeholder(self) -> AssetRef:
        return self.store(EMPTY_SVG.encode("utf-8"), "svg")

    def load(self, key: str, data: bytes) -> None:
        """Register a blob read back from an existing archive under ``key``."""
        ref = AssetRef.parse(key)
        actual = hashlib.md5(data).hexdigest()
        if actual != ref.asset_id:
            logger.warning(f"Asset {key} content hash is {actual}")
        self._blobs[key] = data

    def extract(self, key: str) -> bytes:
        try:
            return self._blobs[key]
        except KeyError:
            raise ResolutionFailure("Asset not found in store", symbol=key) from None
