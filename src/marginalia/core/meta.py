from typing import Any, Iterator, MutableMapping


class MetaBag(MutableMapping[str, Any]):
    """
    Ordered metadata from the document header, e.g.
    - "title": "Covariant derivative"
    - "tags": ["math", "geometry"]
    - "source": {"book": "Lee", "page": 42}
    Keys keep their file order; values are whatever the header decoded to.
    The tree never reads these; the host's metadata panel edits them.
    """

    def __init__(self, entries: dict | None = None):
        self._entries: dict[str, Any] = dict(entries or {})

    def __getitem__(self, key: str) -> Any:
        return self._entries[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def __delitem__(self, key: str) -> None:
        del self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"MetaBag({self._entries!r})"

    def get_str(self, key: str, default: str | None = None) -> str | None:
        """String value for `key`; `default` when missing or not a string."""
        value = self._entries.get(key)
        return value if isinstance(value, str) else default

    def get_list(self, key: str) -> list[Any]:
        """Scalars are promoted to a one-element list, so `tags: math` reads like `tags: [math]`."""
        value = self._entries.get(key)
        if value is None:
            return []
        return list(value) if isinstance(value, (list, tuple)) else [value]

    def to_dict(self) -> dict[str, Any]:
        return dict(self._entries)
