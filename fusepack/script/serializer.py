"""
Block serialization for compiled scripts.

Each function or event handler becomes one top-level stack in the target's
``blocks`` table: a hat block (or ``procedures_definition`` with its
``procedures_prototype`` shadow) followed by a chain of ``fuse_statement``
blocks linked through ``next``/``parent``.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Tuple

from ..errors import DecompileError
from ..packaging.manifest import uid
from .model import CompiledFunction, CompiledScript, CompiledUnit, InstructionGraph, Statement


STATEMENT_OPCODE = "fuse_statement"
GENERIC_HAT_OPCODE = "fuse_when"
DEFINITION_OPCODE = "procedures_definition"
PROTOTYPE_OPCODE = "procedures_prototype"

# event keyword -> (hat opcode, field carrying the argument)
HAT_OPCODES: Dict[str, Tuple[str, Optional[str]]] = {
    'flag': ("event_whenflagclicked", None),
    'key': ("event_whenkeypressed", "KEY_OPTION"),
    'clicked': ("event_whenthisspriteclicked", None),
    'broadcast': ("event_whenbroadcastreceived", "BROADCAST_OPTION"),
    'backdrop': ("event_whenbackdropswitchesto", "BACKDROP"),
    'clone': ("control_start_as_clone", None),
}
EVENTS_BY_OPCODE = {opcode: (event, fld) for event, (opcode, fld) in HAT_OPCODES.items()}

STACK_SPACING = 240

Blocks = Dict[str, Dict[str, Any]]


def _block(opcode: str, *, parent: Optional[str] = None, top_level: bool = False,
           fields: Optional[Dict[str, Any]] = None, shadow: bool = False) -> Dict[str, Any]:
    b: Dict[str, Any] = {
        "opcode": opcode,
        "next": None,
        "parent": parent,
        "inputs": {},
        "fields": fields or {},
        "shadow": shadow,
        "topLevel": top_level,
    }
    return b


def _chain(blocks: Blocks, head_id: str, statements: List[Statement]) -> None:
    prev = head_id
    for stmt in statements:
        bid = uid()
        blocks[bid] = _block(STATEMENT_OPCODE, parent=prev, fields={"CODE": [stmt.text, None]})
        blocks[prev]["next"] = bid
        prev = bid


def _function_blocks(blocks: Blocks, fn: CompiledFunction, y: int) -> None:
    def_id, proto_id = uid(), uid()
    definition = _block(DEFINITION_OPCODE, top_level=True)
    definition["inputs"] = {"custom_block": [1, proto_id]}
    definition.update(x=0, y=y)
    prototype = _block(PROTOTYPE_OPCODE, parent=def_id, shadow=True)
    prototype["mutation"] = {
        "tagName": "mutation",
        "children": [],
        "proccode": " ".join([fn.name] + ["%s"] * len(fn.params)),
        "argumentids": json.dumps([uid() for _ in fn.params]),
        "argumentnames": json.dumps(list(fn.params)),
        "argumentdefaults": json.dumps([""] * len(fn.params)),
        "warp": "false",
    }
    blocks[def_id] = definition
    blocks[proto_id] = prototype
    _chain(blocks, def_id, fn.statements)


def _script_blocks(blocks: Blocks, script: CompiledScript, y: int) -> None:
    opcode, fld = HAT_OPCODES.get(script.event, (GENERIC_HAT_OPCODE, None))
    fields: Dict[str, Any] = {}
    if opcode == GENERIC_HAT_OPCODE:
        fields["EVENT"] = [script.event, None]
        if script.argument is not None:
            fields["ARGUMENT"] = [script.argument, None]
    elif fld is not None:
        fields[fld] = [script.argument or "", None]
    hat_id = uid()
    hat = _block(opcode, top_level=True, fields=fields)
    hat.update(x=0, y=y)
    blocks[hat_id] = hat
    _chain(blocks, hat_id, script.statements)


def to_storage_format(graph: InstructionGraph) -> Blocks:
    blocks: Blocks = {}
    y = 0
    for fn in graph.functions:
        _function_blocks(blocks, fn, y)
        y += STACK_SPACING
    for script in graph.scripts:
        _script_blocks(blocks, script, y)
        y += STACK_SPACING
    return blocks


def units(blocks: Blocks) -> List[str]:
    """Ids of the top-level stacks in ``blocks``, in table order."""
    return [bid for bid, b in blocks.items() if isinstance(b, dict) and b.get("topLevel")]


def _field(block: Dict[str, Any], name: str) -> Optional[str]:
    value = block.get("fields", {}).get(name)
    if isinstance(value, list) and value:
        return value[0]
    return None


def _statements(blocks: Blocks, head: Dict[str, Any]) -> List[Statement]:
    statements: List[Statement] = []
    seen = set()
    bid = head.get("next")
    while bid is not None:
        if bid in seen:
            raise DecompileError(f"Block chain loops back to '{bid}'")
        seen.add(bid)
        block = blocks.get(bid)
        if block is None:
            raise DecompileError(f"Missing block '{bid}'")
        if block.get("opcode") != STATEMENT_OPCODE:
            raise DecompileError(f"Unsupported block opcode '{block.get('opcode')}'")
        code = _field(block, "CODE")
        if code is None:
            raise DecompileError(f"Statement block '{bid}' has no code")
        statements.append(Statement(code))
        bid = block.get("next")
    return statements


def _function_from(blocks: Blocks, definition: Dict[str, Any]) -> CompiledFunction:
    proto_ref = definition.get("inputs", {}).get("custom_block")
    proto = blocks.get(proto_ref[1]) if isinstance(proto_ref, list) and len(proto_ref) > 1 else None
    if proto is None or "mutation" not in proto:
        raise DecompileError("Procedure definition without prototype")
    mutation = proto["mutation"]
    name = re.sub(r"\s*%[sbn]", "", mutation.get("proccode", "")).strip()
    if not re.fullmatch(r"[A-Za-z_]\w*", name):
        raise DecompileError(f"Procedure name '{name}' is not an identifier")
    try:
        params = tuple(json.loads(mutation.get("argumentnames", "[]")))
    except json.JSONDecodeError:
        raise DecompileError(f"Malformed argument names for procedure '{name}'") from None
    return CompiledFunction(name, params, _statements(blocks, definition))


def from_storage_format(blocks: Blocks, top_id: str) -> CompiledUnit:
    block = blocks.get(top_id)
    if block is None:
        raise DecompileError(f"Unknown block id '{top_id}'")
    opcode = block.get("opcode")
    if opcode == DEFINITION_OPCODE:
        return _function_from(blocks, block)
    if opcode == GENERIC_HAT_OPCODE:
        event = _field(block, "EVENT")
        if not event:
            raise DecompileError("Generic event block without event name")
        return CompiledScript(event, _field(block, "ARGUMENT"), _statements(blocks, block))
    if opcode in EVENTS_BY_OPCODE:
        event, fld = EVENTS_BY_OPCODE[opcode]
        argument = _field(block, fld) if fld else None
        return CompiledScript(event, argument, _statements(blocks, block))
    raise DecompileError(f"Unsupported top-level block opcode '{opcode}'")
