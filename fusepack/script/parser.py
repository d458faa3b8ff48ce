from __future__ import annotations

import json
import re
import textwrap
from typing import List, Optional, Tuple

from ..errors import ParseError
from .model import (
    Declaration,
    EventHandler,
    FunctionDecl,
    ImportDecl,
    NamespaceDecl,
    Node,
    Program,
    Variable,
    VariableDecl,
    VariableKind,
)


IDENT = r"[A-Za-z_]\w*"
STRING = r'"(?:[^"\\]|\\.)*"'

IMPORT_RE = re.compile(rf"^import\s+({STRING})$")
NAMESPACE_RE = re.compile(rf"^namespace\s+({IDENT}(?:\.{IDENT})*)\s*\{{$")
VARIABLE_RE = re.compile(
    rf"^(global|var)\s+(?:(list)\s+)?({IDENT})(?:\s*=\s*(.+?))?(?:\s+as\s+({STRING}))?$"
)
FUNCTION_RE = re.compile(rf"^fn\s+({IDENT})\s*\(([^)]*)\)\s*(\{{)?$")
WHEN_RE = re.compile(rf"^when\s+({IDENT})(?:\s+({STRING}|{IDENT}))?\s*\{{$")
EXTERN_RE = re.compile(rf"^extern\s+({IDENT})\s*(?::\s*(.+))?$")

STRING_RE = re.compile(STRING)
REFERENCE_RE = re.compile(rf"(?<![\w.])({IDENT}(?:\.{IDENT})+)")
ASSIGNMENT_RE = re.compile(rf"^({IDENT})\s*[-+*/%]?=(?!=)")

DEFAULT_EXTERN_SHAPE = "any"


def _strip_comments(line: str) -> str:
    # Remove trailing comments starting with #, but not inside quotes
    in_quote = False
    escaped = False
    buf: List[str] = []
    for ch in line:
        if in_quote:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_quote = False
        elif ch == '"':
            in_quote = True
        elif ch == '#':
            break
        buf.append(ch)
    return ''.join(buf).rstrip()


def strip_strings(text: str) -> str:
    """Blank out string literals so their contents are never scanned."""
    return STRING_RE.sub('""', text)


def find_references(text: str) -> List[str]:
    """Return dotted names (``module.member``) used in a statement, in order."""
    seen: List[str] = []
    for match in REFERENCE_RE.finditer(strip_strings(text)):
        ref = match.group(1)
        if ref not in seen:
            seen.append(ref)
    return seen


def assignment_target(text: str) -> Optional[str]:
    m = ASSIGNMENT_RE.match(text.strip())
    return m.group(1) if m else None


def _brace_delta(line: str) -> Tuple[int, int]:
    body = strip_strings(line)
    return body.count('{'), body.count('}')


def _parse_literal(text: str, line_no: int, context: str):
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        raise ParseError(f"Invalid literal: {text}", line=line_no, context=context) from None
    if isinstance(value, list):
        if any(isinstance(item, (list, dict)) or item is None for item in value):
            raise ParseError("List items must be numbers, strings or booleans", line=line_no, context=context)
        return value
    if isinstance(value, (dict, type(None))):
        raise ParseError(f"Unsupported literal: {text}", line=line_no, context=context)
    return value


def _parse_params(text: str, line_no: int, context: str) -> Tuple[str, ...]:
    params = [p.strip() for p in text.split(',') if p.strip()]
    for p in params:
        if not re.fullmatch(IDENT, p):
            raise ParseError(f"Invalid parameter name: {p}", line=line_no, context=context)
    if len(set(params)) != len(params):
        raise ParseError("Duplicate parameter name", line=line_no, context=context)
    return tuple(params)


def _parse_variable(m: re.Match, line_no: int, context: str) -> Declaration:
    scope_kw, list_kw, name, value_text, export_text = m.groups()
    kind = VariableKind.LIST if list_kw else VariableKind.SCALAR
    export_name = json.loads(export_text) if export_text else None
    variable = Variable(name, kind=kind, is_global=(scope_kw == 'global'), export_name=export_name)
    if value_text is None:
        return Declaration(variable, variable.empty_default())
    value = _parse_literal(value_text, line_no, context)
    if variable.is_list and not isinstance(value, list):
        raise ParseError(f"List '{name}' needs a list initializer", line=line_no, context=context)
    if not variable.is_list and isinstance(value, list):
        raise ParseError(f"Scalar '{name}' cannot be initialized with a list", line=line_no, context=context)
    return Declaration(variable, value)


def _collect_body(lines: List[str], start: int) -> Tuple[List[str], int]:
    """Collect lines after an opening brace on line ``start - 1``.

    Returns the dedented, non-blank body lines and the index just past the
    closing brace.
    """
    depth = 1
    block: List[str] = []
    j = start
    while j < len(lines):
        line = _strip_comments(lines[j])
        opens, closes = _brace_delta(line)
        depth += opens - closes
        if depth == 0:
            if line.strip() != '}':
                raise ParseError("Closing brace must be on its own line", line=j + 1, context=lines[j].strip())
            body = textwrap.dedent("\n".join(block)).split("\n")
            return [b.rstrip() for b in body if b.strip()], j + 1
        if depth < 0:
            raise ParseError("Unbalanced closing brace", line=j + 1, context=lines[j].strip())
        block.append(line)
        j += 1
    raise ParseError("Missing closing brace", line=start, context=lines[start - 1].strip())


def _parse_namespace(lines: List[str], start: int, name: str) -> Tuple[NamespaceDecl, int]:
    decl = NamespaceDecl(name=name, line=start)
    i = start
    while i < len(lines):
        line = _strip_comments(lines[i]).strip()
        if not line:
            i += 1
            continue
        if line == '}':
            return decl, i + 1
        m = EXTERN_RE.match(line)
        if m:
            decl.externs[m.group(1)] = (m.group(2) or DEFAULT_EXTERN_SHAPE).strip()
            i += 1
            continue
        m = FUNCTION_RE.match(line)
        if m:
            if m.group(3):
                raise ParseError("Functions inside a namespace are signatures only", line=i + 1, context=line)
            decl.functions[m.group(1)] = _parse_params(m.group(2), i + 1, line)
            i += 1
            continue
        m = VARIABLE_RE.match(line)
        if m:
            d = _parse_variable(m, i + 1, line)
            d.variable.is_global = False
            decl.variables.append(d)
            i += 1
            continue
        m = NAMESPACE_RE.match(line)
        if m:
            child, i = _parse_namespace(lines, i + 1, m.group(1))
            decl.children.append(child)
            continue
        raise ParseError("Unexpected line inside namespace", line=i + 1, context=line)
    raise ParseError(f"Missing closing brace for namespace '{name}'", line=start)


def parse_program(source: str, path: Optional[str] = None) -> Program:
    body: List[Node] = []
    lines = source.splitlines()
    i = 0

    while i < len(lines):
        idx = i
        line = _strip_comments(lines[i]).strip()
        if not line:
            i += 1
            continue
        m = IMPORT_RE.match(line)
        if m:
            body.append(ImportDecl(spec=json.loads(m.group(1)), line=idx + 1))
            i += 1
            continue
        m = NAMESPACE_RE.match(line)
        if m:
            decl, i = _parse_namespace(lines, i + 1, m.group(1))
            decl.line = idx + 1
            body.append(decl)
            continue
        m = VARIABLE_RE.match(line)
        if m:
            body.append(VariableDecl(_parse_variable(m, idx + 1, line), line=idx + 1))
            i += 1
            continue
        m = FUNCTION_RE.match(line)
        if m:
            if not m.group(3):
                raise ParseError("Function declaration needs a body", line=idx + 1, context=line)
            params = _parse_params(m.group(2), idx + 1, line)
            stmts, i = _collect_body(lines, i + 1)
            body.append(FunctionDecl(name=m.group(1), params=params, body=stmts, line=idx + 1))
            continue
        m = WHEN_RE.match(line)
        if m:
            arg = m.group(2)
            if arg is not None and arg.startswith('"'):
                arg = json.loads(arg)
            stmts, i = _collect_body(lines, i + 1)
            body.append(EventHandler(event=m.group(1), argument=arg, body=stmts, line=idx + 1))
            continue
        raise ParseError("Unexpected statement at top level", line=idx + 1, context=line)

    return Program(body, path=path)
