from typing import Protocol

from .core.errors import UNRESOLVED_REFERENCE, Issue
from .core.model import Document, Mention, WikiLink, walk
from .core.ports import PathResolver


class LintRule(Protocol):
    id: str

    def check(self, doc: Document, resolver: PathResolver) -> list[Issue]:
        pass


class UnresolvedReferencesRule:
    id = "unresolved-references"

    def check(self, doc: Document, resolver: PathResolver) -> list[Issue]:
        out: list[Issue] = []
        for _path, node in walk(doc):
            if isinstance(node, WikiLink):
                if resolver.resolve(node.target) is None:
                    out.append(Issue(UNRESOLVED_REFERENCE, f"Unknown note {node.target!r}", node))
            elif isinstance(node, Mention):
                if resolver.resolve(node.id) is None and resolver.resolve(node.label) is None:
                    out.append(Issue(UNRESOLVED_REFERENCE, f"Unknown mention @{node.label}", node))
        return out
