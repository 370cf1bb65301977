#!/usr/bin/env python3
"""
CLI for the physynth live-coding sandbox.

Usage:
    physynth repl [--dt SECONDS]
    physynth run FILE [--frames N] [--dt SECONDS]
    physynth check FILE [--ast] [--json]
    physynth devices
    physynth config

Examples:
    # Interactive console; each input is followed by one simulation frame
    physynth repl

    # Run a script, then simulate two seconds at 60 frames per second
    physynth run examples/orbit.phs --frames 120

    # Parse a script and report diagnostics as JSON
    physynth check examples/orbit.phs --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterator, List

from .config import ConfigError, add_config_arguments, dump_config, resolve_config

logger = logging.getLogger("physynth")

DEFAULT_DT = 1.0 / 60.0


def iter_inputs(source: str) -> Iterator[str]:
    """Split a script into console inputs: lines, with braced blocks kept together."""
    pending: List[str] = []
    depth = 0
    for line in source.splitlines():
        if not pending and not line.strip():
            continue
        pending.append(line)
        depth += line.count("{") - line.count("}")
        if depth <= 0:
            yield "\n".join(pending)
            pending = []
            depth = 0
    if pending:
        yield "\n".join(pending)


def _setup(args):
    config = resolve_config(args)
    logging.basicConfig(level=getattr(logging, config.log_level),
                        format="[%(levelname)s] %(message)s")
    return config


def cmd_repl(args) -> int:
    """Interactive console."""
    from .host import Sandbox
    from .runtime.context import EvaluatorPanic

    sandbox = Sandbox(_setup(args))
    shown = 0
    try:
        while True:
            try:
                line = input("> ")
            except EOFError:
                break
            sandbox.eval(line)
            sandbox.frame(args.dt)
            text = sandbox.transcript[shown:]
            shown = len(sandbox.transcript)
            # The echo of the input is already on screen
            text = text[len(line) + 1:] if text.startswith("\n" + line) else text
            if text:
                print(text.lstrip("\n"))
    except EvaluatorPanic as exc:
        print(f"panic: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        sandbox.close()
    return 0


def cmd_run(args) -> int:
    """Evaluate a script, then step the simulation."""
    from .host import Sandbox
    from .runtime.context import EvaluatorPanic

    source_path = Path(args.file)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return 1

    sandbox = Sandbox(_setup(args))
    try:
        for text in iter_inputs(source_path.read_text()):
            sandbox.eval(text)
        for _ in range(args.frames):
            sandbox.frame(args.dt)
    except EvaluatorPanic as exc:
        print(sandbox.transcript.lstrip("\n"))
        print(f"panic: {exc}", file=sys.stderr)
        return 1
    finally:
        sandbox.close()
    print(sandbox.transcript.lstrip("\n"))
    return 0


def cmd_check(args) -> int:
    """Parse a script and report syntax errors."""
    from .lang import DiagnosticCollector, ScriptError, parse_program
    from .lang.ast import format_ast

    source_path = Path(args.file)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return 1

    collector = DiagnosticCollector()
    count = 0
    for text in iter_inputs(source_path.read_text()):
        try:
            program = parse_program(text, filename=str(source_path))
        except ScriptError as exc:
            collector.add(exc.diagnostic)
            continue
        count += len(program.statements)
        if args.ast:
            print(format_ast(program))

    if args.json:
        print(json.dumps(collector.to_json(), indent=2))
    elif collector.has_errors:
        print(f"Parsing failed with {collector.error_count} error(s):")
        print(collector.format_all())
    else:
        print(f"OK: {source_path.name} - {count} statement(s), no errors")
    return 1 if collector.has_errors else 0


def cmd_devices(args) -> int:
    """List audio devices."""
    from .audio.device import AudioDeviceError, list_devices

    _setup(args)
    try:
        for kind in ("output", "input"):
            print(f"{kind} devices:")
            for line in list_devices(kind):
                print(f"  {line}")
    except AudioDeviceError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def cmd_config(args) -> int:
    """Print the effective configuration."""
    print(dump_config(resolve_config(args)), end="")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="physynth",
        description="Live-coding physics and audio sandbox",
    )
    add_config_arguments(parser)

    subparsers = parser.add_subparsers(dest="action", required=True)

    repl_parser = subparsers.add_parser("repl", help="Interactive console")
    repl_parser.add_argument("--dt", type=float, default=DEFAULT_DT,
                             help="Seconds simulated after each input")

    run_parser = subparsers.add_parser("run", help="Run a script")
    run_parser.add_argument("file", help="Script file")
    run_parser.add_argument("--frames", type=int, default=0,
                            help="Frames to simulate after the script")
    run_parser.add_argument("--dt", type=float, default=DEFAULT_DT, help="Seconds per frame")

    check_parser = subparsers.add_parser("check", help="Check a script for syntax errors")
    check_parser.add_argument("file", help="Script file")
    check_parser.add_argument("--ast", action="store_true", help="Print the parsed statements")
    check_parser.add_argument("--json", action="store_true", help="Report diagnostics as JSON")

    subparsers.add_parser("devices", help="List audio devices")
    subparsers.add_parser("config", help="Print the effective configuration as YAML")

    args = parser.parse_args(argv)

    try:
        if args.action == "repl":
            return cmd_repl(args)
        elif args.action == "run":
            return cmd_run(args)
        elif args.action == "check":
            return cmd_check(args)
        elif args.action == "devices":
            return cmd_devices(args)
        elif args.action == "config":
            return cmd_config(args)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
