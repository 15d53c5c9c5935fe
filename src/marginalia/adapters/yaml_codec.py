import io
import logging
import re

import yaml

from ..core.errors import MALFORMED_METADATA, Issue
from ..core.meta import MetaBag
from ..core.ports import MetadataCodec

logger = logging.getLogger(__name__)

# Opening delimiter, optional YAML lines, closing delimiter at a line start.
_FM = re.compile(r"\A---[ \t]*\r?\n(.*?\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


class YamlFrontmatter(MetadataCodec):
    def split(self, text: str, issues: list[Issue] | None = None) -> tuple[MetaBag, str]:
        m = _FM.match(text)
        if not m:
            return MetaBag(), text
        try:
            fm = yaml.safe_load(io.StringIO(m.group(1) or "")) or {}
        except yaml.YAMLError as exc:
            return self._malformed(text, f"Unparsable metadata header: {exc}", issues)
        if not isinstance(fm, dict):
            return self._malformed(
                text, f"Metadata header is a {type(fm).__name__}, not a mapping", issues
            )
        return MetaBag({str(k): v for k, v in fm.items()}), text[m.end() :]

    def join(self, meta: MetaBag, body: str) -> str:
        if not meta:
            return body
        buf = io.StringIO()
        yaml.safe_dump(dict(meta), buf, sort_keys=False, allow_unicode=True)
        return f"---\n{buf.getvalue()}---\n{body}"

    def _malformed(
        self, text: str, message: str, issues: list[Issue] | None
    ) -> tuple[MetaBag, str]:
        # Keep the whole file as body so nothing is lost.
        logger.warning("%s; loading the file without metadata", message)
        if issues is not None:
            issues.append(Issue(MALFORMED_METADATA, message))
        return MetaBag(), text
