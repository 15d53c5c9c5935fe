"""Runtime wiring helper for the CLI and for hosts embedding the editor core."""

from dataclasses import dataclass
from pathlib import Path

from .adapters.fs_storage import FsFileStore
from .adapters.idgen import AttachmentNamer
from .adapters.markdown_parser import MarkdownParser
from .adapters.markdown_serializer import MarkdownSerializer
from .adapters.resolver_index import VaultIndex, VaultPathResolver
from .adapters.yaml_codec import YamlFrontmatter
from .config import MarginaliaConfig, load_config
from .editing.paste import PasteClassifier
from .editing.session import EditorSession
from .editing.sources import MentionSource, SlashCommandSource
from .editing.suggestion import SuggestionEngine


@dataclass
class Runtime:
    """Container for all wired components."""
    root: Path
    store: FsFileStore
    index: VaultIndex
    resolver: VaultPathResolver
    codec: YamlFrontmatter
    parser: MarkdownParser
    serializer: MarkdownSerializer
    config: MarginaliaConfig

    def new_session(self) -> EditorSession:
        """A fresh editing session with its own suggestion engine."""
        suggest = self.config.suggest
        engine = SuggestionEngine(
            [
                MentionSource(self.index, max_items=suggest.max_items, trigger=suggest.mention_trigger),
                SlashCommandSource(max_items=suggest.max_items, trigger=suggest.command_trigger),
            ]
        )
        return EditorSession(
            codec=self.codec,
            parser=self.parser,
            serializer=self.serializer,
            classifier=PasteClassifier(self.resolver, uri_schemes=self.config.paste.uri_schemes),
            engine=engine,
            resolver=self.resolver,
            store=self.store,
            attachments=self.config.attachments,
            namer=AttachmentNamer(prefix=self.config.attachments.prefix),
        )


def build_runtime(
    vault_path: Path | None = None,
    config_path: Path | None = None,
) -> Runtime:
    """Build and wire all components for a vault."""
    config = load_config(config_path=config_path, vault_path=vault_path)

    if vault_path is None:
        vault_path = config.vault.root

    index = VaultIndex(vault_path)
    return Runtime(
        root=vault_path,
        store=FsFileStore(vault_path),
        index=index,
        resolver=VaultPathResolver(index),
        codec=YamlFrontmatter(),
        parser=MarkdownParser(),
        serializer=MarkdownSerializer(),
        config=config,
    )
