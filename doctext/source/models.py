import mimetypes
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def format_file_size(size_bytes: int) -> str:
    """Format a byte count for display, e.g. ``1536`` -> ``"1.5 KB"``."""
    if size_bytes <= 0:
        return "0 Bytes"
    exponent = 0
    while size_bytes >= 1024 ** (exponent + 1) and exponent < len(_SIZE_UNITS) - 1:
        exponent += 1
    value = round(size_bytes / 1024**exponent, 2)
    return f"{value:g} {_SIZE_UNITS[exponent]}"


def path_from_uri(uri: str) -> Path:
    """Resolve a ``file://`` URI or a plain filesystem path."""
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


@dataclass(frozen=True)
class Document:
    """Immutable descriptor of a document selected by a caller."""

    uri: str
    mime_type: str
    size_bytes: int
    name: str

    @classmethod
    def from_path(cls, path: Path | str, mime_type: str | None = None) -> "Document":
        """Build a descriptor for a local file, guessing the mime type from its extension.

        Raises:
            FileNotFoundError: if the file does not exist.
        """
        resolved = Path(path)
        if not resolved.is_file():
            raise FileNotFoundError(f"File not found: {resolved}")
        if mime_type is None:
            mime_type = mimetypes.guess_type(resolved.name)[0] or ""
        return cls(
            uri=str(resolved),
            mime_type=mime_type,
            size_bytes=resolved.stat().st_size,
            name=resolved.name,
        )

    @property
    def key(self) -> str:
        """Identity used for single-flight session lookup.

        Local paths and ``file://`` URIs resolve to one absolute path, so every
        spelling of the same file shares a key.
        """
        if urlparse(self.uri).scheme in ("", "file"):
            return str(path_from_uri(self.uri).resolve())
        return self.uri

    @property
    def extension(self) -> str:
        _, dot, ext = self.name.rpartition(".")
        return ext.lower() if dot else ""

    @property
    def display_size(self) -> str:
        return format_file_size(self.size_bytes)
