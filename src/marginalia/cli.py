"""CLI for marginalia - markdown notes through the editor's codec."""

import argparse
import json
import logging
import platform
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .core.errors import ConfigError, Issue
from .core.model import to_dict
from .format import FormatOptions, format_file
from .lint import LintRule, UnresolvedReferencesRule
from .runtime import build_runtime

logger = logging.getLogger(__name__)


def _note_paths(args: argparse.Namespace, rt: Any) -> list[Path]:
    """Explicit paths as given (or vault-relative), else every markdown file in the vault."""
    if not getattr(args, "paths", None):
        return [rt.root / rel for rel in rt.index.markdown_files()]
    out = []
    for raw in args.paths:
        p = Path(raw)
        if not p.exists() and (rt.root / raw).exists():
            p = rt.root / raw
        out.append(p)
    return out


def _display(path: Path, rt: Any) -> str:
    try:
        return path.resolve().relative_to(Path(rt.root).resolve()).as_posix()
    except ValueError:
        return str(path)


def cmd_fmt(args: argparse.Namespace, rt: Any) -> int:
    """Normalize notes by loading and re-serializing them."""
    options = FormatOptions(ensure_final_eol=not args.no_final_eol)
    changed = []
    for path in _note_paths(args, rt):
        result = format_file(path, options, dry_run=args.check)
        if result.changed:
            changed.append((path, result))

    for path, result in changed:
        if not args.quiet:
            verb = "would reformat" if args.check else "reformatted"
            print(f"{verb} {_display(path, rt)} ({', '.join(result.changes) or 'whitespace'})")

    if args.check:
        return 1 if changed else 0
    return 0


def cmd_check(args: argparse.Namespace, rt: Any) -> int:
    """Report codec issues and unresolved references."""
    rules: list[LintRule] = [UnresolvedReferencesRule()]
    findings: list[tuple[str, Issue]] = []
    for path in _note_paths(args, rt):
        issues: list[Issue] = []
        raw = path.read_text(encoding="utf-8")
        _meta, body = rt.codec.split(raw, issues)
        doc = rt.parser.parse(body, issues)
        for rule in rules:
            issues.extend(rule.check(doc, rt.resolver))
        findings.extend((_display(path, rt), issue) for issue in issues)

    if args.json:
        output = [{"path": name, **issue.to_dict()} for name, issue in findings]
        print(json.dumps(output, indent=2))
    elif not args.quiet:
        for name, issue in findings:
            print(f"{name}: [{issue.kind}] {issue.message}")

    return 1 if findings else 0


def cmd_tree(args: argparse.Namespace, rt: Any) -> int:
    """Print the parsed document as JSON."""
    path = _note_paths(args, rt)[0]
    if not path.exists():
        print(f"Note {args.paths[0]} not found", file=sys.stderr)
        return 1
    issues: list[Issue] = []
    meta, body = rt.codec.split(path.read_text(encoding="utf-8"), issues)
    doc = rt.parser.parse(body, issues)
    output = {
        "meta": meta.to_dict(),
        "document": to_dict(doc),
        "issues": [issue.to_dict() for issue in issues],
    }
    print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
    return 0


def cmd_resolve(args: argparse.Namespace, rt: Any) -> int:
    """Resolve a note name to its vault path."""
    path = rt.resolver.resolve(args.name)
    if args.json:
        print(json.dumps({"name": args.name, "path": path}))
    elif path is not None:
        print(path)
    if path is None:
        if not args.json and not args.quiet:
            print(f"No note matches {args.name!r}", file=sys.stderr)
        return 2
    return 0


def version_string() -> str:
    return (
        f"marginalia {__version__} "
        f"(python {platform.python_version()}, platform {platform.system().lower()})"
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(prog="marginalia", description="marginalia CLI")
    parser.add_argument("--version", action="version", version=version_string())
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config file (default: search cwd/marginalia.toml, vault/marginalia.toml)",
    )
    parser.add_argument(
        "--vault",
        type=Path,
        default=None,
        help="Path to vault directory (overrides config)",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimize output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")

    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # fmt command
    parser_fmt = subparsers.add_parser("fmt", help="Normalize notes through parse + serialize")
    parser_fmt.add_argument("paths", nargs="*", help="Notes to format (default: whole vault)")
    parser_fmt.add_argument(
        "--check", action="store_true", help="Only report; exit 1 if anything would change"
    )
    parser_fmt.add_argument(
        "--no-final-eol", action="store_true", help="Do not force a trailing newline"
    )

    # check command
    parser_check = subparsers.add_parser("check", help="Report codec issues and unresolved references")
    parser_check.add_argument("paths", nargs="*", help="Notes to check (default: whole vault)")
    parser_check.add_argument(
        "--json", action="store_true", default=argparse.SUPPRESS, help="Machine-readable output"
    )

    # tree command
    parser_tree = subparsers.add_parser("tree", help="Dump the parsed document as JSON")
    parser_tree.add_argument("paths", nargs=1, help="Note to parse")

    # resolve command
    parser_resolve = subparsers.add_parser("resolve", help="Resolve a note name to a vault path")
    parser_resolve.add_argument("name", help="Name, path or basename")

    args = parser.parse_args(argv)

    try:
        rt = build_runtime(vault_path=args.vault, config_path=args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    level = logging.DEBUG if args.verbose else getattr(logging, rt.config.logging.level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    handlers = {
        "fmt": cmd_fmt,
        "check": cmd_check,
        "tree": cmd_tree,
        "resolve": cmd_resolve,
    }
    handler = handlers.get(args.cmd)
    if handler is None:
        print(f"Unknown command: {args.cmd}", file=sys.stderr)
        return 1
    try:
        return handler(args, rt)
    except Exception as e:
        logger.debug("Command %s failed", args.cmd, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
