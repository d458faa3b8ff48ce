from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from .errors import FuseError
from .pipeline.builder import compile_project
from .pipeline.decompiler import decompile_archive


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="fusepack", description="Compile and decompile multi-target .sb3 projects")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only show warnings and errors")
    sub = parser.add_subparsers(dest="cmd")

    p_compile = sub.add_parser("compile", help="Build an .sb3 archive from a project description")
    p_compile.add_argument("project", type=str, help="Path to project.yaml (or .json)")
    p_compile.add_argument("output", type=str, help="Output .sb3 path")
    p_compile.add_argument("--jobs", type=int, default=None, help="Threads used to read and hash assets")

    p_decompile = sub.add_parser("decompile", help="Reconstruct editable sources from an .sb3 archive")
    p_decompile.add_argument("input", type=str, help="Path to .sb3 archive")
    p_decompile.add_argument("output_dir", type=str, help="Directory to write project.yaml, scripts/ and assets/")

    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    if args.cmd is None:
        parser.print_help()
        return 2
    _configure_logging(args.verbose, args.quiet)

    if args.cmd == "compile":
        project = Path(args.project)
        if not project.exists():
            print(f"Project description not found: {project}", file=sys.stderr)
            return 2
        if args.jobs is not None and args.jobs < 1:
            print("--jobs must be at least 1", file=sys.stderr)
            return 2
        try:
            result = compile_project(project, args.output, jobs=args.jobs)
        except FuseError as e:
            print(f"[fusepack] {e}", file=sys.stderr)
            return 2
        if result.conflicts:
            print(f"{len(result.conflicts)} variable(s) skipped, see warnings above", file=sys.stderr)
        print(f"Successfully compiled to {result.output}")
        return 0

    if args.cmd == "decompile":
        archive = Path(args.input)
        if not archive.exists():
            print(f"Archive not found: {archive}", file=sys.stderr)
            return 2
        try:
            result = decompile_archive(archive, args.output_dir)
        except FuseError as e:
            print(f"[fusepack] {e}", file=sys.stderr)
            return 2
        if result.warnings:
            print(f"{len(result.warnings)} warning(s) during decompilation", file=sys.stderr)
        print(f"Successfully decompiled to {result.output_dir}")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
