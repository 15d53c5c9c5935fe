import secrets
import time

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


class AttachmentNamer:
    def __init__(self, prefix: str = "pasted", nbytes: int = 3):  # 3 bytes -> 6 hex chars
        self.prefix = prefix
        self.nbytes = nbytes

    def extension(self, mime: str | None) -> str:
        return _EXTENSIONS.get((mime or "").lower(), "png")

    def new_name(self, mime: str | None) -> str:
        millis = int(time.time() * 1000)
        return f"{self.prefix}-{millis}-{secrets.token_hex(self.nbytes)}.{self.extension(mime)}"
