"""
Decompile driver: ``.sb3`` archive -> editable project directory.

Output layout::

    <out>/project.yaml
    <out>/assets/<md5>.<ext>
    <out>/scripts/stage.fuse
    <out>/scripts/<SpriteName>.fuse

The stage is processed before any sprite so that its variables are known to
be global when sprite tables are read. Function and script bodies that
cannot be decompiled are skipped with a warning; the rest of the target is
still emitted.
"""
from __future__ import annotations

import logging
import re
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Union

from pydantic import ValidationError

from ..config import (
    CostumeSpec,
    ProjectSpec,
    RotationStyle,
    SoundSpec,
    StageSpec,
    TargetSpec,
    dump_project,
    error_messages,
)
from ..errors import DecompileError, PartialDecompileFailure, ResolutionFailure, SymbolConflict
from ..namespace import NamespaceNode, merge, to_declarations
from ..packaging.archive import Unpacker
from ..packaging.manifest import CostumeEntry, SoundEntry, TargetRecord
from ..script.builtins import builtin_namespaces
from ..script.frontend import DeclarationNode, Frontend, ReferenceFrontend
from ..script.model import (
    Declaration,
    EventHandler,
    FunctionDecl,
    Program,
    Variable,
    VariableDecl,
    VariableKind,
)
from ..script.parser import DEFAULT_EXTERN_SHAPE
from .scope import GlobalScope


logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ROTATION_STYLES = typing.get_args(RotationStyle)
SCRIPT_SUFFIX = ".fuse"
STAGE_SCRIPT = "stage"

Warning_ = Union[SymbolConflict, PartialDecompileFailure]


def safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_]", "_", name) or "_"


class VariableNameManager:
    """Hand out unique identifiers for display names.

    A display name that is already a valid identifier is used as-is when
    free; anything else is sanitized and suffixed until unique.
    """

    def __init__(self, taken: Iterable[str] = ()) -> None:
        self._taken: Set[str] = set(taken)

    def fork(self) -> 'VariableNameManager':
        return VariableNameManager(self._taken)

    def identifier(self, display: str) -> str:
        base = display if IDENTIFIER_RE.match(display) else safe_name(display)
        if base[0].isdigit():
            base = "_" + base
        candidate = base
        n = 2
        while candidate in self._taken:
            candidate = f"{base}_{n}"
            n += 1
        self._taken.add(candidate)
        return candidate


# ============================================================================
# Symbols
# ============================================================================

class SymbolReconstructor:
    """Rebuild variable declarations from the opaque-id tables of the manifest."""

    def __init__(self) -> None:
        self.global_scope = GlobalScope()
        self.conflicts: List[SymbolConflict] = []
        self.skipped: List[PartialDecompileFailure] = []
        self._names = VariableNameManager()
        self._global_displays: Set[str] = set()

    def _entries(self, record: TargetRecord):
        tables = ((record.variables, VariableKind.SCALAR), (record.lists, VariableKind.LIST))
        for table, kind in tables:
            for key, entry in table.items():
                # Cloud variables are stored as [name, value, true]
                if not isinstance(entry, list) or len(entry) < 2:
                    failure = PartialDecompileFailure(record.name, f"{kind.value} {key}", "malformed table entry")
                    logger.warning(str(failure))
                    self.skipped.append(failure)
                    continue
                display, default = str(entry[0]), entry[1]
                if kind is VariableKind.LIST and not isinstance(default, list):
                    default = []
                yield key, display, kind, default

    @staticmethod
    def _declaration(names: VariableNameManager, record: TargetRecord, key: str, display: str,
                     kind: VariableKind, default, is_global: bool) -> Declaration:
        source = record.source_names.get(key)
        if isinstance(source, str) and IDENTIFIER_RE.match(source):
            ident = names.identifier(source)
        else:
            ident = names.identifier(display)
        export = display if ident != display else None
        return Declaration(Variable(ident, kind=kind, is_global=is_global, export_name=export), default)

    def stage(self, record: TargetRecord) -> List[Declaration]:
        declared: List[Declaration] = []
        for key, display, kind, default in self._entries(record):
            decl = self._declaration(self._names, record, key, display, kind, default, True)
            self.global_scope.declare(decl, record.name)
            self._global_displays.add(display)
            declared.append(decl)
        return declared

    def sprite(self, record: TargetRecord) -> List[Declaration]:
        names = self._names.fork()
        declared: List[Declaration] = []
        for key, display, kind, default in self._entries(record):
            if display in self._global_displays:
                conflict = SymbolConflict(display, record.name, "name is already global")
                logger.warning(str(conflict))
                self.conflicts.append(conflict)
                continue
            declared.append(self._declaration(names, record, key, display, kind, default, False))
        return declared


class NamespaceSynthesizer:
    """Declare placeholder externs for references the known tree cannot resolve."""

    def __init__(self, known: NamespaceNode) -> None:
        self.known = known
        self.generated = NamespaceNode()

    def synthesize(self, references: Iterable[str], variables: Set[str]) -> NamespaceNode:
        tree = NamespaceNode()
        for ref in references:
            *path, member = ref.split(".")
            if not path or path[0] in variables or self.known.resolve(ref):
                continue
            node = tree.ensure_path(path)
            if not node.has_member(member):
                node.externs[member] = DEFAULT_EXTERN_SHAPE
        self.generated = merge(self.generated, tree)
        return tree


class SourceEmitter:

    def __init__(self, frontend: Frontend) -> None:
        self.frontend = frontend

    def emit(self, namespaces: NamespaceNode, declarations: Sequence[Declaration],
             nodes: Sequence[DeclarationNode]) -> str:
        body: List = list(to_declarations(namespaces))
        body.extend(VariableDecl(d) for d in declarations)
        body.extend(n for n in nodes if isinstance(n, FunctionDecl))
        body.extend(n for n in nodes if isinstance(n, EventHandler))
        return self.frontend.to_source(Program(body))


# ============================================================================
# Driver
# ============================================================================

@dataclass
class DecompileResult:
    output_dir: Path
    project_file: Path
    scripts: Dict[str, Path] = field(default_factory=dict)
    assets: Dict[str, Path] = field(default_factory=dict)
    warnings: List[Warning_] = field(default_factory=list)
    generated_namespaces: NamespaceNode = field(default_factory=NamespaceNode)


class ProjectDecompiler:

    def __init__(self, frontend: Optional[Frontend] = None, known: Optional[NamespaceNode] = None) -> None:
        self.frontend = frontend or ReferenceFrontend()
        self.known = known if known is not None else builtin_namespaces()
        self.emitter = SourceEmitter(self.frontend)

    def _decompile_units(self, record: TargetRecord, warnings: List[Warning_]) -> List[DeclarationNode]:
        nodes: List[DeclarationNode] = []
        blocks = record.blocks
        for top_id in self.frontend.units(blocks):
            try:
                unit = self.frontend.from_storage_format(blocks, top_id)
                nodes.append(self.frontend.decompile_unit(unit))
            except DecompileError as e:
                opcode = blocks.get(top_id, {}).get("opcode", "?")
                failure = PartialDecompileFailure(record.name, f"block {top_id} ({opcode})", e.message)
                logger.warning(str(failure))
                warnings.append(failure)
        return nodes

    def _source(self, record: TargetRecord, declarations: List[Declaration], visible: Set[str],
                synthesizer: NamespaceSynthesizer, warnings: List[Warning_]) -> Optional[str]:
        nodes = self._decompile_units(record, warnings)
        refs: List[str] = []
        for node in nodes:
            refs.extend(self.frontend.references(node))
        generated = synthesizer.synthesize(refs, visible)
        if generated.is_empty() and not declarations and not nodes:
            return None
        return self.emitter.emit(generated, declarations, nodes)

    @staticmethod
    def _extracted(record: TargetRecord, entries: Sequence[Union[CostumeEntry, SoundEntry]],
                   assets: Dict[str, Path]):
        for entry in entries:
            if entry.md5ext not in assets:
                logger.warning(f"{record.name}: dropping '{entry.name}', asset {entry.md5ext} was not extracted")
                continue
            yield entry

    def _costumes(self, record: TargetRecord, assets: Dict[str, Path]) -> List[CostumeSpec]:
        return [
            CostumeSpec(path=f"assets/{c.md5ext}", name=c.name, x=c.rotation_center_x, y=c.rotation_center_y)
            for c in self._extracted(record, record.costumes, assets)
        ]

    def _sounds(self, record: TargetRecord, assets: Dict[str, Path]) -> List[SoundSpec]:
        return [
            SoundSpec(path=f"assets/{s.md5ext}", name=s.name)
            for s in self._extracted(record, record.sounds, assets)
        ]

    def _target_spec(self, record: TargetRecord, entry: Optional[str], assets: Dict[str, Path]) -> TargetSpec:
        rotation = record.rotation_style
        if rotation not in ROTATION_STYLES:
            logger.warning(f"{record.name}: unknown rotation style '{rotation}', using 'all around'")
            rotation = "all around"
        try:
            return TargetSpec(
                name=record.name,
                entry=entry,
                current_costume=record.current_costume,
                rotation_style=rotation,
                layer_order=record.layer_order,
                visible=record.visible,
                x=record.x,
                y=record.y,
                size=record.size,
                direction=record.direction,
                draggable=record.draggable,
                tempo=record.tempo,
                volume=record.volume,
                costumes=self._costumes(record, assets),
                sounds=self._sounds(record, assets),
            )
        except ValidationError as e:
            raise ResolutionFailure(
                f"Sprite '{record.name}' has invalid properties: {'; '.join(error_messages(e))}",
                symbol=record.name,
            ) from e

    def decompile(self, archive: Union[str, Path], out_dir: Union[str, Path]) -> DecompileResult:
        out = Path(out_dir)
        scripts_dir = out / "scripts"
        scripts_dir.mkdir(parents=True, exist_ok=True)

        with Unpacker(archive) as unpacker:
            manifest = unpacker.manifest
            assets = unpacker.extract_all(out)
        stage = manifest.stage
        if stage is None:
            raise ResolutionFailure("Archive has no stage target", path=str(archive))

        result = DecompileResult(out, out / "project.yaml", assets=assets)
        symbols = SymbolReconstructor()
        synthesizer = NamespaceSynthesizer(self.known)

        logger.info("Decompiling stage...")
        stage_decls = symbols.stage(stage)
        global_idents = {d.variable.name for d in stage_decls}
        stage_source = self._source(stage, stage_decls, global_idents, synthesizer, result.warnings) or ""
        stage_path = scripts_dir / f"{STAGE_SCRIPT}{SCRIPT_SUFFIX}"
        stage_path.write_text(stage_source, encoding="utf-8")
        result.scripts[stage.name] = stage_path

        used = {STAGE_SCRIPT}
        sprites: List[TargetSpec] = []
        for record in manifest.sprites:
            logger.info(f"Decompiling sprite: {record.name}")
            decls = symbols.sprite(record)
            visible = global_idents | {d.variable.name for d in decls}
            source = self._source(record, decls, visible, synthesizer, result.warnings)
            entry = None
            if source is not None:
                stem = safe_name(record.name)
                candidate, n = stem, 2
                while candidate in used:
                    candidate = f"{stem}_{n}"
                    n += 1
                used.add(candidate)
                path = scripts_dir / f"{candidate}{SCRIPT_SUFFIX}"
                path.write_text(source, encoding="utf-8")
                result.scripts[record.name] = path
                entry = f"scripts/{path.name}"
            sprites.append(self._target_spec(record, entry, assets))

        result.warnings = [*symbols.conflicts, *symbols.skipped, *result.warnings]
        try:
            spec = ProjectSpec(
                extensions=list(manifest.extensions),
                stage=StageSpec(
                    entry=f"scripts/{stage_path.name}",
                    current_backdrop=stage.current_costume,
                    tempo=stage.tempo,
                    volume=stage.volume,
                    backdrops=self._costumes(stage, assets),
                    sounds=self._sounds(stage, assets),
                ),
                targets=sprites,
            )
        except ValidationError as e:
            raise ResolutionFailure(
                f"Archive cannot be described as a project: {'; '.join(error_messages(e))}", path=str(archive),
            ) from e
        dump_project(spec, result.project_file)
        result.generated_namespaces = synthesizer.generated
        logger.info(f"Decompiled {len(sprites)} sprites into {out}")
        return result


def decompile_archive(
    archive: Union[str, Path],
    out_dir: Union[str, Path],
    frontend: Optional[Frontend] = None,
) -> DecompileResult:
    return ProjectDecompiler(frontend).decompile(archive, out_dir)
