"""Round-trip formatter: load a note, serialize it back, report what moved."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ..adapters.markdown_parser import MarkdownParser
from ..adapters.markdown_serializer import MarkdownSerializer
from ..adapters.yaml_codec import YamlFrontmatter
from ..core.errors import Issue

logger = logging.getLogger(__name__)


@dataclass
class FormatOptions:
    ensure_final_eol: bool = True


@dataclass
class FormatResult:
    changed: bool
    changes: list[str]  # "body", "metadata", "eol"
    original_text: str
    formatted_text: str
    issues: list[Issue] = field(default_factory=list)


def format_note(raw_text: str, options: FormatOptions | None = None) -> FormatResult:
    """Send a whole note (header included) through split, parse, serialize and join.

    The result says which parts moved; codec issues found on the way are
    passed through untouched.
    """
    options = options or FormatOptions()
    codec = YamlFrontmatter()
    issues: list[Issue] = []

    meta, body = codec.split(raw_text, issues)
    new_body = MarkdownSerializer().serialize(MarkdownParser().parse(body, issues), issues)

    changes = []
    if body.rstrip("\n") != new_body:
        changes.append("body")
    if new_body and (options.ensure_final_eol or body.endswith("\n")):
        new_body += "\n"

    formatted = codec.join(meta, new_body)
    old_header = raw_text[: len(raw_text) - len(body)]
    new_header = formatted[: len(formatted) - len(new_body)]
    if meta and new_header != old_header:
        changes.append("metadata")
    if new_body.endswith("\n") != body.endswith("\n"):
        changes.append("eol")

    return FormatResult(
        changed=formatted != raw_text,
        changes=changes,
        original_text=raw_text,
        formatted_text=formatted,
        issues=issues,
    )


def _replace_file(path: Path, text: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def format_file(
    file_path: Path,
    options: FormatOptions | None = None,
    dry_run: bool = True,
) -> FormatResult:
    """Format the note at `file_path`; with `dry_run` only report."""
    result = format_note(file_path.read_text(encoding="utf-8"), options)
    if result.changed and not dry_run:
        _replace_file(file_path, result.formatted_text)
        logger.info("Reformatted %s (%s)", file_path, ", ".join(result.changes))
    return result
