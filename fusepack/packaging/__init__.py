"""
fusepack packaging

- asset_store: content-addressed blob store (md5 keys, placeholder costume)
- manifest: project.json records
- archive: assembling and unpacking .sb3 containers
"""

from .asset_store import (
    EMPTY_SVG,
    AssetRef,
    ContentAddressedAssetStore,
)

from .manifest import (
    ArchiveManifest,
    TargetRecord,
    CostumeEntry,
    SoundEntry,
    uid,
)

from .archive import (
    ArchiveAssembler,
    Unpacker,
    variable_tables,
)

__all__ = [
    'EMPTY_SVG',
    'AssetRef',
    'ContentAddressedAssetStore',
    'ArchiveManifest',
    'TargetRecord',
    'CostumeEntry',
    'SoundEntry',
    'uid',
    'ArchiveAssembler',
    'Unpacker',
    'variable_tables',
]
