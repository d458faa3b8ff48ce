from __future__ import annotations

import json
from typing import List

from .model import (
    Declaration,
    EventHandler,
    FunctionDecl,
    ImportDecl,
    NamespaceDecl,
    Program,
    VariableDecl,
)


INDENT = "  "


def _literal(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def _variable_line(decl: Declaration, keyword: str) -> str:
    var = decl.variable
    kind = "list " if var.is_list else ""
    line = f"{keyword} {kind}{var.name} = {_literal(decl.default)}"
    if var.export_name and var.export_name != var.name:
        line += f" as {_literal(var.export_name)}"
    return line


def _namespace_lines(decl: NamespaceDecl, depth: int = 0) -> List[str]:
    pad = INDENT * depth
    inner = INDENT * (depth + 1)
    out = [f"{pad}namespace {decl.name} {{"]
    for name, shape in decl.externs.items():
        out.append(f"{inner}extern {name}: {shape}")
    for name, params in decl.functions.items():
        out.append(f"{inner}fn {name}({', '.join(params)})")
    for d in decl.variables:
        out.append(inner + _variable_line(d, "var"))
    for child in decl.children:
        out.extend(_namespace_lines(child, depth + 1))
    out.append(f"{pad}}}")
    return out


def _block_lines(header: str, body: List[str]) -> List[str]:
    return [f"{header} {{", *(INDENT + line for line in body), "}"]


def to_source(program: Program) -> str:
    """Pretty-print ``program`` in canonical section order."""
    sections: List[List[str]] = []

    imports = [f"import {_literal(d.spec)}" for d in program.of_type(ImportDecl)]
    if imports:
        sections.append(imports)
    for ns in program.of_type(NamespaceDecl):
        sections.append(_namespace_lines(ns))
    variables = [
        _variable_line(v.declaration, "global" if v.variable.is_global else "var")
        for v in program.of_type(VariableDecl)
    ]
    if variables:
        sections.append(variables)
    for fn in program.of_type(FunctionDecl):
        sections.append(_block_lines(f"fn {fn.name}({', '.join(fn.params)})", fn.body))
    for handler in program.of_type(EventHandler):
        header = f"when {handler.event}"
        if handler.argument is not None:
            header += f" {_literal(handler.argument)}"
        sections.append(_block_lines(header, handler.body))

    return "\n\n".join("\n".join(s) for s in sections) + ("\n" if sections else "")
