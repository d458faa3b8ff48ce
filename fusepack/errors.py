"""
Error taxonomy for fusepack.

Fatal failures are exceptions and abort the run. Symbol conflicts and
per-unit decompile failures are plain records: they are logged as warnings
and collected on the run result.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class FuseError(Exception):
    """Base class for fatal fusepack errors."""


@dataclass(eq=False)
class SchemaViolation(FuseError):
    """The project description is structurally invalid."""
    violations: List[str] = field(default_factory=list)
    source: Optional[str] = None

    def __str__(self) -> str:
        where = f" ({self.source})" if self.source else ""
        lines = [f"Project description does not conform to schema{where}:"]
        lines.extend(f"- {v}" for v in self.violations)
        return "\n".join(lines)


@dataclass(eq=False)
class ResolutionFailure(FuseError):
    """A referenced file cannot be read or a symbol cannot be resolved."""
    message: str
    path: Optional[str] = None
    symbol: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.message]
        if self.symbol:
            parts.append(f"symbol: {self.symbol}")
        if self.path:
            parts.append(f"path: {self.path}")
        return " | ".join(parts)


@dataclass(eq=False)
class ScriptError(FuseError):
    """Front-end failure while parsing, compiling or decompiling a script."""
    message: str
    line: int | None = None
    context: str | None = None
    path: str | None = None

    def __str__(self) -> str:
        where = f"{self.path}: " if self.path else ""
        loc = f" (line {self.line})" if self.line else ""
        ctx = f"\n  >> {self.context}" if self.context else ""
        return f"{where}{self.message}{loc}{ctx}"


class ParseError(ScriptError):
    pass


class CompileError(ScriptError):
    pass


class DecompileError(ScriptError):
    pass


# ============================================================================
# Non-fatal records
# ============================================================================

@dataclass(frozen=True)
class SymbolConflict:
    """A declaration dropped because its name collides across scopes."""
    name: str
    target: str
    reason: str

    def __str__(self) -> str:
        return f"{self.target}: variable '{self.name}' skipped ({self.reason})"


@dataclass(frozen=True)
class PartialDecompileFailure:
    """One function or script body that could not be decompiled."""
    target: str
    unit: str
    reason: str

    def __str__(self) -> str:
        return f"{self.target}: could not decompile {self.unit}: {self.reason}"
