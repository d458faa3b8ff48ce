"""
Archive manifest - the ``project.json`` document inside an ``.sb3`` container.

Targets, costumes and sounds are dataclasses with ``to_dict``/``from_dict``
using the camelCase keys of the on-disk format. Absent keys take the same
defaults the assembler writes.
"""
from __future__ import annotations

import copy
import json
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ============================================================================
# Constants
# ============================================================================

MANIFEST_NAME = "project.json"

# Characters Scratch itself draws block and variable ids from
ID_SOUP = "!#%()*+,-./:;=?@[]^_`{|}~ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"

DEFAULT_META: Dict[str, Any] = {
    "semver": "3.0.0",
    "vm": "0.2.0",
    "agent": "",
    "platform": {"name": "TurboWarp", "url": "https://turbowarp.org/"},
}

DEFAULT_SOUND_RATE = 48000
PLACEHOLDER_COSTUME_NAME = "empty"


def uid(length: int = 20) -> str:
    """Return a fresh opaque id."""
    return ''.join(secrets.choice(ID_SOUP) for _ in range(length))


# ============================================================================
# Entries
# ============================================================================

@dataclass
class CostumeEntry:
    name: str
    asset_id: str
    data_format: str
    rotation_center_x: float = 0
    rotation_center_y: float = 0

    @property
    def md5ext(self) -> str:
        return f"{self.asset_id}.{self.data_format}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assetId": self.asset_id,
            "name": self.name,
            "md5ext": self.md5ext,
            "dataFormat": self.data_format,
            "rotationCenterX": self.rotation_center_x,
            "rotationCenterY": self.rotation_center_y,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'CostumeEntry':
        asset_id, data_format = _split_md5ext(d)
        return cls(
            name=d.get("name", ""),
            asset_id=asset_id,
            data_format=data_format,
            rotation_center_x=d.get("rotationCenterX", 0),
            rotation_center_y=d.get("rotationCenterY", 0),
        )


@dataclass
class SoundEntry:
    name: str
    asset_id: str
    data_format: str
    rate: int = DEFAULT_SOUND_RATE
    sample_count: int = 1

    @property
    def md5ext(self) -> str:
        return f"{self.asset_id}.{self.data_format}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assetId": self.asset_id,
            "name": self.name,
            "md5ext": self.md5ext,
            "dataFormat": self.data_format,
            "format": self.data_format,
            "rate": self.rate,
            "sampleCount": self.sample_count,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'SoundEntry':
        asset_id, data_format = _split_md5ext(d)
        return cls(
            name=d.get("name", ""),
            asset_id=asset_id,
            data_format=data_format,
            rate=d.get("rate", DEFAULT_SOUND_RATE),
            sample_count=d.get("sampleCount", 1),
        )


def _split_md5ext(d: Dict[str, Any]) -> tuple:
    md5ext = d.get("md5ext")
    if md5ext and "." in md5ext:
        asset_id, ext = md5ext.rsplit(".", 1)
        return d.get("assetId", asset_id), d.get("dataFormat", ext)
    return d.get("assetId", ""), d.get("dataFormat", "")


# ============================================================================
# Targets
# ============================================================================

@dataclass
class TargetRecord:
    """One stage or sprite entry of the manifest.

    ``variables`` and ``lists`` are keyed by opaque id; each value is
    ``[display name, default]`` (cloud variables carry a third item).
    ``source_names`` maps ids whose display name differs from the script
    identifier back to that identifier; it is written as ``sourceNames``
    only when non-empty.
    """
    name: str
    is_stage: bool = False
    variables: Dict[str, List[Any]] = field(default_factory=dict)
    lists: Dict[str, List[Any]] = field(default_factory=dict)
    broadcasts: Dict[str, str] = field(default_factory=dict)
    blocks: Dict[str, Any] = field(default_factory=dict)
    comments: Dict[str, Any] = field(default_factory=dict)
    source_names: Dict[str, str] = field(default_factory=dict)
    current_costume: int = 0
    costumes: List[CostumeEntry] = field(default_factory=list)
    sounds: List[SoundEntry] = field(default_factory=list)
    volume: float = 100
    layer_order: int = 0
    tempo: float = 60
    video_transparency: float = 50
    video_state: str = "on"
    text_to_speech_language: Optional[str] = None
    # Sprite only
    visible: bool = True
    x: float = 0
    y: float = 0
    size: float = 100
    direction: float = 90
    draggable: bool = False
    rotation_style: str = "all around"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "isStage": self.is_stage,
            "name": self.name,
            "variables": self.variables,
            "lists": self.lists,
            "broadcasts": self.broadcasts,
            "blocks": self.blocks,
            "comments": self.comments,
            "currentCostume": self.current_costume,
            "costumes": [c.to_dict() for c in self.costumes],
            "sounds": [s.to_dict() for s in self.sounds],
            "volume": self.volume,
            "layerOrder": self.layer_order,
            "tempo": self.tempo,
            "videoTransparency": self.video_transparency,
            "videoState": self.video_state,
            "textToSpeechLanguage": self.text_to_speech_language,
        }
        if self.source_names:
            d["sourceNames"] = self.source_names
        if not self.is_stage:
            d.update({
                "visible": self.visible,
                "x": self.x,
                "y": self.y,
                "size": self.size,
                "direction": self.direction,
                "draggable": self.draggable,
                "rotationStyle": self.rotation_style,
            })
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'TargetRecord':
        is_stage = bool(d.get("isStage", False))
        return cls(
            name=d.get("name", "Stage" if is_stage else ""),
            is_stage=is_stage,
            variables=dict(d.get("variables") or {}),
            lists=dict(d.get("lists") or {}),
            broadcasts=dict(d.get("broadcasts") or {}),
            blocks=dict(d.get("blocks") or {}),
            comments=dict(d.get("comments") or {}),
            source_names=dict(d.get("sourceNames") or {}),
            current_costume=d.get("currentCostume", 0),
            costumes=[CostumeEntry.from_dict(c) for c in d.get("costumes") or []],
            sounds=[SoundEntry.from_dict(s) for s in d.get("sounds") or []],
            volume=d.get("volume", 100),
            layer_order=d.get("layerOrder", 0),
            tempo=d.get("tempo", 60),
            video_transparency=d.get("videoTransparency", 50),
            video_state=d.get("videoState", "on"),
            text_to_speech_language=d.get("textToSpeechLanguage"),
            visible=d.get("visible", True),
            x=d.get("x", 0),
            y=d.get("y", 0),
            size=d.get("size", 100),
            direction=d.get("direction", 90),
            draggable=d.get("draggable", False),
            rotation_style=d.get("rotationStyle", "all around"),
        )


@dataclass
class ArchiveManifest:
    targets: List[TargetRecord] = field(default_factory=list)
    monitors: List[Any] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_META))

    @property
    def stage(self) -> Optional[TargetRecord]:
        for t in self.targets:
            if t.is_stage:
                return t
        return None

    @property
    def sprites(self) -> List[TargetRecord]:
        return [t for t in self.targets if not t.is_stage]

    def asset_keys(self) -> List[str]:
        """Every storage key referenced by a costume or sound, first use first."""
        keys: List[str] = []
        for t in self.targets:
            for entry in [*t.costumes, *t.sounds]:
                if entry.md5ext not in keys:
                    keys.append(entry.md5ext)
        return keys

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targets": [t.to_dict() for t in self.targets],
            "monitors": list(self.monitors),
            "extensions": list(self.extensions),
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ArchiveManifest':
        return cls(
            targets=[TargetRecord.from_dict(t) for t in d.get("targets") or []],
            monitors=list(d.get("monitors") or []),
            extensions=list(d.get("extensions") or []),
            meta=d.get("meta") or copy.deepcopy(DEFAULT_META),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, s: str) -> 'ArchiveManifest':
        return cls.from_dict(json.loads(s))
