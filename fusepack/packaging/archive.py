"""
Archive assembly and unpacking.

An archive is a DEFLATE zip holding exactly one ``project.json`` and one
``<md5>.<ext>`` entry per distinct asset.
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple, Union

from ..config import CostumeSpec, Project, SoundSpec, StageSpec
from ..errors import ResolutionFailure
from ..script.model import Declaration
from .asset_store import AssetRef, ContentAddressedAssetStore
from .manifest import (
    MANIFEST_NAME,
    PLACEHOLDER_COSTUME_NAME,
    ArchiveManifest,
    CostumeEntry,
    SoundEntry,
    TargetRecord,
    uid,
)

if TYPE_CHECKING:
    from ..pipeline.scope import CompiledTarget


logger = logging.getLogger(__name__)

SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9]+\.[A-Za-z0-9]+$")


def variable_tables(
    declarations: Sequence[Declaration],
) -> Tuple[Dict[str, List[Any]], Dict[str, List[Any]], Dict[str, str]]:
    """Re-key declarations by fresh opaque ids.

    Returns ``(variables, lists, source_names)``. Each table value is
    ``[display name, default]``; ``source_names`` maps the id of every
    variable whose display name differs from its script identifier back to
    that identifier.
    """
    variables: Dict[str, List[Any]] = {}
    lists: Dict[str, List[Any]] = {}
    source_names: Dict[str, str] = {}
    for decl in declarations:
        var = decl.variable
        key = uid()
        if var.is_list:
            lists[key] = [var.display_name, list(decl.default) if isinstance(decl.default, list) else []]
        else:
            variables[key] = [var.display_name, 0 if decl.default is None else decl.default]
        if var.display_name != var.name:
            source_names[key] = var.name
    return variables, lists, source_names


# ============================================================================
# Assembly
# ============================================================================

class ArchiveAssembler:
    """Build the manifest for a compiled project and write the container."""

    def __init__(self, store: ContentAddressedAssetStore, max_workers: Optional[int] = None) -> None:
        self.store = store
        self.max_workers = max_workers

    def _refs(self, project: Project, specs: Sequence[Union[CostumeSpec, SoundSpec]]) -> List[AssetRef]:
        return self.store.store_files([project.resolve(s.path) for s in specs], max_workers=self.max_workers)

    def costumes(self, project: Project, specs: Sequence[CostumeSpec]) -> List[CostumeEntry]:
        if not specs:
            ref = self.store.store_placeholder()
            return [CostumeEntry(PLACEHOLDER_COSTUME_NAME, ref.asset_id, ref.data_format)]
        return [
            CostumeEntry(spec.display_name, ref.asset_id, ref.data_format, spec.x, spec.y)
            for spec, ref in zip(specs, self._refs(project, specs))
        ]

    def sounds(self, project: Project, specs: Sequence[SoundSpec]) -> List[SoundEntry]:
        return [
            SoundEntry(spec.display_name, ref.asset_id, ref.data_format)
            for spec, ref in zip(specs, self._refs(project, specs))
        ]

    def _record(self, project: Project, target: 'CompiledTarget', index: int) -> TargetRecord:
        spec = target.spec
        if isinstance(spec, StageSpec):
            record = TargetRecord(
                name="Stage",
                is_stage=True,
                current_costume=spec.current_backdrop,
                volume=spec.volume,
                layer_order=0,
                tempo=spec.tempo,
            )
            record.costumes = self.costumes(project, spec.backdrops)
        else:
            record = TargetRecord(
                name=spec.name,
                current_costume=spec.current_costume,
                volume=spec.volume,
                layer_order=spec.layer_order if spec.layer_order is not None else index,
                tempo=spec.tempo,
                visible=spec.visible,
                x=spec.x,
                y=spec.y,
                size=spec.size,
                direction=spec.direction,
                draggable=spec.draggable,
                rotation_style=spec.rotation_style,
            )
            record.costumes = self.costumes(project, spec.costumes)
        record.sounds = self.sounds(project, spec.sounds)
        record.variables, record.lists, record.source_names = variable_tables(target.variables)
        record.blocks = target.blocks
        return record

    def assemble(self, project: Project, targets: Sequence['CompiledTarget']) -> ArchiveManifest:
        """Stage first, then sprites in declared order (sprite ``i`` gets layer ``i``)."""
        manifest = ArchiveManifest(extensions=list(project.spec.extensions))
        for index, target in enumerate(targets):
            manifest.targets.append(self._record(project, target, index))
        logger.debug(f"Assembled manifest with {len(manifest.targets)} targets, {len(self.store)} assets")
        return manifest

    def write(self, manifest: ArchiveManifest, output: Union[str, Path]) -> Path:
        out = Path(output)
        out.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{out.name}.", suffix=".tmp", dir=out.parent)
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(MANIFEST_NAME, manifest.to_json())
                for key in manifest.asset_keys():
                    zf.writestr(key, self.store.extract(key))
            os.replace(tmp, out)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        logger.info(f"Wrote {out}")
        return out


# ============================================================================
# Unpacking
# ============================================================================

class Unpacker:
    """Read an archive back into a manifest and an asset store.

    Usage::

        with Unpacker("game.sb3") as unpacker:
            manifest = unpacker.manifest
            paths = unpacker.extract_all(out_dir)
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.store = ContentAddressedAssetStore()
        self.manifest: Optional[ArchiveManifest] = None
        self._zip: Optional[zipfile.ZipFile] = None

    def __enter__(self) -> 'Unpacker':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> ArchiveManifest:
        try:
            self._zip = zipfile.ZipFile(self.path)
        except (OSError, zipfile.BadZipFile) as e:
            raise ResolutionFailure(f"Cannot open archive: {e}", path=str(self.path)) from e
        try:
            raw = self._zip.read(MANIFEST_NAME)
        except KeyError:
            self.close()
            raise ResolutionFailure(f"Archive has no {MANIFEST_NAME}", path=str(self.path)) from None
        try:
            self.manifest = ArchiveManifest.from_json(raw.decode("utf-8"))
        except (ValueError, AttributeError, TypeError) as e:
            self.close()
            raise ResolutionFailure(f"Malformed {MANIFEST_NAME}: {e}", path=str(self.path)) from e
        self._load_blobs(self.manifest)
        return self.manifest

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def _load_blobs(self, manifest: ArchiveManifest) -> None:
        assert self._zip is not None
        for key in manifest.asset_keys():
            if not SAFE_KEY_RE.match(key):
                logger.warning(f"Skipping asset with unsafe storage key: {key}")
                continue
            try:
                data = self._zip.read(key)
            except KeyError:
                logger.warning(f"Asset {key} is referenced but missing from the archive")
                continue
            self.store.load(key, data)

    def extract_asset(self, key: str, assets_dir: Union[str, Path]) -> Path:
        dest = Path(assets_dir) / key
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.store.extract(key))
        return dest

    def extract_all(self, out_dir: Union[str, Path]) -> Dict[str, Path]:
        """Write every loaded blob to ``<out_dir>/assets/<key>``; returns key -> path."""
        assets_dir = Path(out_dir) / "assets"
        return {key: self.extract_asset(key, assets_dir) for key in self.store.keys()}
