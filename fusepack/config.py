"""
Project description - the document listing a stage, its sprites, their
entry scripts, assets and display properties.

Loaded from YAML (or JSON) and validated with pydantic before anything is
compiled. Every violation is reported at once through :class:`SchemaViolation`.

Example::

    types: [types/audio.fuse]
    extensions: [pen]
    stage:
      entry: scripts/stage.fuse
      backdrops:
        - {path: assets/sky.png, name: sky}
    targets:
      - name: Cat
        entry: scripts/Cat.fuse
        x: 10
        costumes:
          - {path: assets/cat.svg, name: cat, x: 48, y: 50}
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ResolutionFailure, SchemaViolation


RotationStyle = Literal["all around", "left-right", "don't rotate"]

ASSET_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]+$")


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class AssetSpec(_Spec):
    path: str
    name: Optional[str] = None

    @field_validator("path")
    @classmethod
    def has_extension(cls, path: str) -> str:
        # The extension becomes the data format in the <md5>.<ext> storage key
        if not ASSET_EXTENSION_RE.match(Path(path).suffix):
            raise ValueError(f"asset path '{path}' needs an alphanumeric file extension")
        return path

    @property
    def display_name(self) -> str:
        return self.name if self.name is not None else Path(self.path).stem


class CostumeSpec(AssetSpec):
    """A costume or backdrop; ``x``/``y`` is the rotation centre."""
    x: float = 0
    y: float = 0


class SoundSpec(AssetSpec):
    pass


class StageSpec(_Spec):
    entry: Optional[str] = None
    current_backdrop: int = Field(default=0, ge=0, alias="currentBackdrop")
    tempo: float = 60
    volume: float = 100
    backdrops: List[CostumeSpec] = Field(default_factory=list)
    sounds: List[SoundSpec] = Field(default_factory=list)


class TargetSpec(_Spec):
    name: str = Field(..., min_length=1)
    entry: Optional[str] = None
    current_costume: int = Field(default=0, ge=0, alias="currentCostume")
    rotation_style: RotationStyle = Field(default="all around", alias="rotationStyle")
    layer_order: Optional[int] = Field(default=None, alias="layerOrder")
    visible: bool = True
    x: float = 0
    y: float = 0
    size: float = 100
    direction: float = 90
    draggable: bool = False
    tempo: float = 60
    volume: float = 100
    costumes: List[CostumeSpec] = Field(default_factory=list)
    sounds: List[SoundSpec] = Field(default_factory=list)


class ProjectSpec(_Spec):
    types: List[str] = Field(default_factory=list)
    extensions: List[str] = Field(default_factory=list)
    root: Optional[str] = None
    stage: StageSpec
    targets: List[TargetSpec]

    @field_validator("targets")
    @classmethod
    def unique_target_names(cls, targets: List[TargetSpec]) -> List[TargetSpec]:
        seen = set()
        for t in targets:
            if t.name in seen:
                raise ValueError(f"duplicate sprite name '{t.name}'")
            seen.add(t.name)
        return targets


# ============================================================================
# Loading
# ============================================================================

@dataclass
class Project:
    """A validated description plus the directory its paths are relative to."""
    spec: ProjectSpec
    path: Path

    @property
    def base_dir(self) -> Path:
        return self.path.parent

    @property
    def root_dir(self) -> Path:
        if self.spec.root is None:
            return self.base_dir
        return self.resolve(self.spec.root)

    def resolve(self, relative: Union[str, Path]) -> Path:
        return (self.base_dir / relative).resolve()


def _format_error(err: Dict[str, Any]) -> str:
    loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
    return f"{loc}: {err.get('msg', 'invalid value')}"


def error_messages(e: ValidationError) -> List[str]:
    """``loc: message`` for every error pydantic collected."""
    return [_format_error(err) for err in e.errors()]


def validate_project(data: Any, source: Optional[str] = None) -> ProjectSpec:
    if not isinstance(data, dict):
        raise SchemaViolation(["<root>: project description must be a mapping"], source=source)
    try:
        return ProjectSpec.model_validate(data)
    except ValidationError as e:
        raise SchemaViolation(error_messages(e), source=source) from e


def load_project(path: Union[str, Path]) -> Project:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ResolutionFailure(f"Cannot read project description: {e.strerror or e}", path=str(p)) from e
    try:
        if p.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SchemaViolation([f"<root>: cannot parse document: {e}"], source=str(p)) from e
    return Project(spec=validate_project(data, source=str(p)), path=p.resolve())


def dump_project(spec: ProjectSpec, path: Union[str, Path]) -> None:
    data = spec.model_dump(by_alias=True, exclude_none=True)
    Path(path).write_text(
        yaml.safe_dump(data, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )
