"""
Compile driver: project description -> ``.sb3`` archive.

validate -> namespaces -> reconcile scopes -> store assets -> write archive
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ..config import Project, load_project
from ..errors import ScriptError, SymbolConflict
from ..namespace import NamespaceNode, merge
from ..packaging.archive import ArchiveAssembler
from ..packaging.asset_store import ContentAddressedAssetStore
from ..packaging.manifest import ArchiveManifest
from ..script.builtins import builtin_namespaces
from ..script.frontend import Frontend, ReferenceFrontend
from .imports import ImportResolver
from .scope import ReconcileResult, ScopeReconciler


logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    output: Path
    manifest: ArchiveManifest
    reconciled: ReconcileResult
    conflicts: List[SymbolConflict] = field(default_factory=list)


class ProjectBuilder:

    def __init__(self, frontend: Optional[Frontend] = None, jobs: Optional[int] = None) -> None:
        self.frontend = frontend or ReferenceFrontend()
        self.jobs = jobs

    def load_namespaces(self, project: Project, resolver: ImportResolver) -> NamespaceNode:
        """Built-in namespaces merged with every ``types`` file, in listed order."""
        tree = builtin_namespaces()
        for rel in project.spec.types:
            path = project.resolve(rel)
            logger.debug(f"Loading type declarations: {path}")
            try:
                program = resolver.load(path)
                tree = merge(tree, resolver.collect(program, path))
            except ScriptError as e:
                e.path = e.path or str(path)
                raise
        return tree

    def build(self, project: Project, output: Union[str, Path]) -> BuildResult:
        resolver = ImportResolver(self.frontend, project.root_dir)
        namespaces = self.load_namespaces(project, resolver)
        reconciler = ScopeReconciler(self.frontend, namespaces, resolver)
        reconciled = reconciler.reconcile(project)

        store = ContentAddressedAssetStore()
        assembler = ArchiveAssembler(store, max_workers=self.jobs)
        manifest = assembler.assemble(project, reconciled.targets)
        out = assembler.write(manifest, output)
        logger.info(f"Compiled {len(reconciled.targets) - 1} sprites, {len(store)} distinct assets")
        return BuildResult(out, manifest, reconciled, reconciled.conflicts)


def compile_project(
    project_path: Union[str, Path],
    output: Union[str, Path],
    jobs: Optional[int] = None,
    frontend: Optional[Frontend] = None,
) -> BuildResult:
    project = load_project(project_path)
    return ProjectBuilder(frontend, jobs).build(project, output)
