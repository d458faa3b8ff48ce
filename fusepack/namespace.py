"""
Namespace trees - hierarchical symbol definitions shared by every target.

A tree is a forest of named modules hanging off an unnamed root. Each module
holds functions, variables and extern declarations plus child modules. Trees
are treated as immutable: ``merge`` returns a new tree and never touches its
inputs. The decompiler works on an explicit copy through ``ensure_path``.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .script.model import Declaration, NamespaceDecl, Variable, VariableKind


@dataclass(frozen=True)
class FunctionSignature:
    name: str
    params: Tuple[str, ...] = ()


@dataclass
class NamespaceNode:
    name: str = ""
    functions: Dict[str, FunctionSignature] = field(default_factory=dict)
    variables: Dict[str, Declaration] = field(default_factory=dict)
    externs: Dict[str, str] = field(default_factory=dict)
    children: Dict[str, "NamespaceNode"] = field(default_factory=dict)

    def copy(self) -> "NamespaceNode":
        return copy.deepcopy(self)

    def is_empty(self) -> bool:
        return not (self.functions or self.variables or self.externs or self.children)

    def has_member(self, name: str) -> bool:
        return name in self.functions or name in self.variables or name in self.externs

    def find(self, segments: Sequence[str]) -> Optional["NamespaceNode"]:
        node: Optional[NamespaceNode] = self
        for seg in segments:
            if node is None:
                return None
            node = node.children.get(seg)
        return node

    def resolve(self, reference: str) -> bool:
        """Return True when ``a.b.member`` names a member of module ``a.b``."""
        *path, member = reference.split(".")
        if not path:
            return False
        node = self.find(path)
        return node is not None and node.has_member(member)

    def ensure_path(self, segments: Sequence[str]) -> "NamespaceNode":
        """Return the module at ``segments``, creating empty modules on the way."""
        node = self
        for seg in segments:
            child = node.children.get(seg)
            if child is None:
                child = NamespaceNode(name=seg)
                node.children[seg] = child
            node = child
        return node

    def walk(self, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], "NamespaceNode"]]:
        for name, child in self.children.items():
            path = prefix + (name,)
            yield path, child
            yield from child.walk(path)

    # ------------------------------------------------------------------
    # Plain-data form (built-in tables, debugging)
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.functions:
            data['functions'] = {k: list(v.params) for k, v in self.functions.items()}
        if self.variables:
            data['variables'] = {
                k: {'kind': d.variable.kind.value, 'default': d.default}
                for k, d in self.variables.items()
            }
        if self.externs:
            data['externs'] = dict(self.externs)
        if self.children:
            data['children'] = {k: v.to_dict() for k, v in self.children.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: str = "") -> "NamespaceNode":
        node = cls(name=name)
        for fname, params in data.get('functions', {}).items():
            node.functions[fname] = FunctionSignature(fname, tuple(params))
        for vname, spec in data.get('variables', {}).items():
            kind = VariableKind(spec.get('kind', 'scalar'))
            var = Variable(vname, kind=kind)
            node.variables[vname] = Declaration(var, spec.get('default', var.empty_default()))
        node.externs.update(data.get('externs', {}))
        for cname, cdata in data.get('children', {}).items():
            node.children[cname] = cls.from_dict(cdata, name=cname)
        return node


def merge(base: NamespaceNode, upper: NamespaceNode) -> NamespaceNode:
    """Merge ``upper`` onto ``base`` and return a new tree.

    Leaves (functions, variables, externs) of ``upper`` override those of
    ``base`` that share a name. Children present in both are merged
    recursively, children only in ``upper`` are grafted as-is and children
    only in ``base`` are preserved.
    """
    merged = NamespaceNode(
        name=base.name,
        functions={**base.functions, **upper.functions},
        variables={**copy.deepcopy(base.variables), **copy.deepcopy(upper.variables)},
        externs={**base.externs, **upper.externs},
    )
    for name, child in base.children.items():
        merged.children[name] = child.copy()
    for name, child in upper.children.items():
        existing = base.children.get(name)
        if existing is None:
            merged.children[name] = child.copy()
        else:
            merged.children[name] = merge(existing, child)
    return merged


def merge_all(base: NamespaceNode, uppers: Sequence[NamespaceNode]) -> NamespaceNode:
    result = base
    for upper in uppers:
        result = merge(result, upper)
    return result


def from_declarations(decls: Sequence[NamespaceDecl]) -> NamespaceNode:
    """Build a tree from ``namespace`` blocks of one source file.

    Blocks are applied in source order with the same override rule as
    :func:`merge`, so a later block may redefine an earlier member.
    """
    root = NamespaceNode()
    for decl in decls:
        root = merge(root, _wrap(decl))
    return root


def _wrap(decl: NamespaceDecl) -> NamespaceNode:
    segments = decl.name.split(".")
    leaf = _node_from_decl(segments[-1], decl)
    for seg in reversed(segments[:-1]):
        leaf = NamespaceNode(name=seg, children={leaf.name: leaf})
    return NamespaceNode(children={leaf.name: leaf})


def _node_from_decl(name: str, decl: NamespaceDecl) -> NamespaceNode:
    node = NamespaceNode(name=name)
    node.externs.update(decl.externs)
    for fname, params in decl.functions.items():
        node.functions[fname] = FunctionSignature(fname, tuple(params))
    for d in decl.variables:
        node.variables[d.variable.name] = d
    for child_decl in decl.children:
        wrapped = _wrap(child_decl)
        node = merge(node, NamespaceNode(name=name, children=wrapped.children))
    return node


def to_declarations(tree: NamespaceNode) -> List[NamespaceDecl]:
    """Inverse of :func:`from_declarations` for the top-level modules of ``tree``."""
    return [_decl_from_node(name, child) for name, child in tree.children.items()]


def _decl_from_node(name: str, node: NamespaceNode) -> NamespaceDecl:
    return NamespaceDecl(
        name=name,
        externs=dict(node.externs),
        functions={k: v.params for k, v in node.functions.items()},
        variables=list(node.variables.values()),
        children=[_decl_from_node(cname, child) for cname, child in node.children.items()],
    )
