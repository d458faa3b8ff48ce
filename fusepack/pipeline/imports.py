"""Resolution of ``import "<spec>"`` declarations between script files."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Set

from ..errors import ResolutionFailure
from ..namespace import NamespaceNode, merge
from ..script.frontend import Frontend
from ..script.model import Program


logger = logging.getLogger(__name__)


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ResolutionFailure(f"Cannot read script: {e.strerror or e}", path=str(path)) from e


class ImportResolver:
    """Collect the namespace declarations of a file and everything it imports.

    ``./`` and ``../`` specifiers are relative to the importing file. ``/``
    specifiers are looked up under ``root`` first and then taken as absolute
    paths. Each file is visited once per collection, so import cycles
    terminate.
    """

    def __init__(self, frontend: Frontend, root: Path) -> None:
        self.frontend = frontend
        self.root = Path(root)

    def resolve_spec(self, spec: str, importer: Path) -> Path:
        if spec.startswith("./") or spec.startswith("../"):
            candidate = (importer.parent / spec).resolve()
        elif spec.startswith("/"):
            candidate = (self.root / spec.lstrip("/")).resolve()
            if not candidate.is_file():
                candidate = Path(spec)
        else:
            raise ResolutionFailure(
                "Import specifier must start with './', '../' or '/'",
                path=str(importer), symbol=spec,
            )
        if not candidate.is_file():
            raise ResolutionFailure("Imported file not found", path=str(importer), symbol=spec)
        return candidate

    def load(self, path: Path) -> Program:
        return self.frontend.parse(read_source(path), str(path))

    def collect(self, program: Program, path: Path, visited: Optional[Set[Path]] = None) -> NamespaceNode:
        """Namespace tree of ``program`` layered over those of its imports."""
        if visited is None:
            visited = {path.resolve()}
        tree = NamespaceNode()
        for spec in self.frontend.imports(program):
            dep = self.resolve_spec(spec, path)
            key = dep.resolve()
            if key in visited:
                continue
            visited.add(key)
            logger.debug(f"{path.name}: importing {dep}")
            tree = merge(tree, self.collect(self.load(dep), dep, visited))
        return merge(tree, self.frontend.collect_namespaces(program))
