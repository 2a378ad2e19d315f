"""Artifact extraction and local persistence.

Assistant replies may embed self-contained deliverables between
``<artifact ...>`` and ``</artifact>`` markers. ``extract`` pulls them out
into typed ``Artifact`` records and leaves a short placeholder in the text
shown to the user. ``ArtifactStore`` writes artifacts to a private temporary
directory and hands viewable ones to the default browser.
"""

from __future__ import annotations

import html
import logging
import re
import shutil
import tempfile
import uuid
import webbrowser
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Self

from .data_structures import ErrorKind

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ArtifactStore",
    "Extraction",
    "classify",
    "extract",
    "placeholder",
    "wrap_component",
]

logger = logging.getLogger(__name__)


class ArtifactKind(str, Enum):
    """Artifact categories recognized by their declared content type."""

    HTML = "html"
    REUSABLE_COMPONENT = "reusable_component"
    SCRIPT = "script"

    @property
    def viewable(self) -> bool:
        """Whether the artifact can be opened in a browser."""
        return self is not ArtifactKind.SCRIPT


@dataclass(frozen=True)
class Artifact:
    """A deliverable extracted from an assistant reply."""

    kind: ArtifactKind
    content: str
    source: str
    content_type: str
    title: str = "Untitled"
    identifier: str | None = None
    index: int = 0

    @property
    def extension(self) -> str:
        if self.kind is ArtifactKind.SCRIPT:
            return ".ts" if "typescript" in self.content_type else ".js"
        return ".html"


@dataclass(frozen=True)
class Extraction:
    """Result of scanning one piece of assistant text."""

    display_text: str
    artifacts: tuple[Artifact, ...] = field(default_factory=tuple)


# =============================================================================
# Classification
# =============================================================================

_REACT_TYPE_RE = re.compile(r"^application/vnd\.[A-Za-z0-9_-]+\.react$")
_SCRIPT_TYPES = frozenset({"text/javascript", "text/typescript"})


def classify(content_type: str | None) -> ArtifactKind | None:
    """Map a declared content type to an artifact kind (None if unsupported)."""
    if not content_type:
        return None
    content_type = content_type.strip().lower()
    if content_type == "text/html":
        return ArtifactKind.HTML
    if _REACT_TYPE_RE.match(content_type):
        return ArtifactKind.REUSABLE_COMPONENT
    if content_type in _SCRIPT_TYPES:
        return ArtifactKind.SCRIPT
    return None


_HARNESS_HEAD = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <script src="https://unpkg.com/react@18/umd/react.development.js"></script>
    <script src="https://unpkg.com/react-dom@18/umd/react-dom.development.js"></script>
    <script src="https://unpkg.com/@babel/standalone/babel.min.js"></script>
    <script src="https://cdn.tailwindcss.com"></script>
</head>
<body>
    <div id="root"></div>
    <script type="text/babel">
"""

_HARNESS_TAIL = """
        const Root = typeof App !== 'undefined'
            ? App
            : () => React.createElement('div', null, 'Component not found');
        ReactDOM.render(React.createElement(Root), document.getElementById('root'));
    </script>
</body>
</html>
"""


def wrap_component(source: str, title: str = "React Component") -> str:
    """Embed component source in a standalone HTML page that mounts ``App``."""
    return _HARNESS_HEAD.format(title=html.escape(title)) + source + _HARNESS_TAIL


def placeholder(title: str, kind: ArtifactKind) -> str:
    return f"[artifact: {title} ({kind.value})]"


# =============================================================================
# Extraction
# =============================================================================

_TAG_RE = re.compile(r"<artifact\b(?P<attrs>[^<>]*)>|</artifact\s*>")
_ATTR_RE = re.compile(r'([A-Za-z_][\w-]*)\s*=\s*"([^"]*)"')


def _parse_attributes(raw: str) -> dict[str, str]:
    return {name: html.unescape(value) for name, value in _ATTR_RE.findall(raw)}


def _strip_one_newline(body: str) -> str:
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    if body.endswith("\r\n"):
        body = body[:-2]
    elif body.endswith("\n"):
        body = body[:-1]
    return body


def _anomaly(message: str, position: int) -> None:
    logger.debug(
        "%s: %s at offset %d",
        ErrorKind.ARTIFACT_EXTRACTION_ANOMALY.value,
        message,
        position,
    )


def extract(text: str) -> Extraction:
    """Split assistant text into display text and artifacts.

    Recognized blocks are replaced by a placeholder; everything else,
    including malformed or unsupported blocks, is kept byte for byte.
    Never raises for any input string.
    """
    if "<artifact" not in text:
        return Extraction(display_text=text)

    pieces: list[str] = []
    artifacts: list[Artifact] = []
    cursor = 0
    open_tag: re.Match[str] | None = None

    for tag in _TAG_RE.finditer(text):
        if tag.group("attrs") is not None:
            if open_tag is not None:
                _anomaly("open tag superseded by a later open tag", open_tag.start())
            open_tag = tag
            continue

        if open_tag is None:
            _anomaly("close tag without open tag", tag.start())
            continue

        attrs = _parse_attributes(open_tag.group("attrs"))
        content_type = attrs.get("type", "")
        kind = classify(content_type)
        if kind is None:
            logger.debug("unsupported artifact type %r left inline", content_type)
            open_tag = None
            continue

        title = attrs.get("title") or "Untitled"
        source = _strip_one_newline(text[open_tag.end() : tag.start()])
        content = (
            wrap_component(source, title)
            if kind is ArtifactKind.REUSABLE_COMPONENT
            else source
        )
        artifacts.append(
            Artifact(
                kind=kind,
                content=content,
                source=source,
                content_type=content_type,
                title=title,
                identifier=attrs.get("identifier") or None,
                index=len(artifacts),
            )
        )
        pieces.append(text[cursor : open_tag.start()])
        pieces.append(placeholder(title, kind))
        cursor = tag.end()
        open_tag = None

    if open_tag is not None:
        _anomaly("unterminated artifact block", open_tag.start())

    if not artifacts:
        return Extraction(display_text=text)

    pieces.append(text[cursor:])
    return Extraction(display_text="".join(pieces), artifacts=tuple(artifacts))


# =============================================================================
# Persistence
# =============================================================================

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(title: str, max_length: int = 40) -> str:
    slug = _SLUG_RE.sub("-", title.lower()).strip("-")[:max_length].strip("-")
    return slug or "artifact"


class ArtifactStore:
    """Writes artifacts to a private directory and opens them externally.

    The directory is created on first use and removed by ``cleanup()`` (or on
    leaving the context manager) when the store created it.

    Example:
        >>> with ArtifactStore() as store:
        ...     path = store.open(artifact)
    """

    def __init__(self, directory: Path | None = None):
        self._directory = directory
        self._owns_directory = directory is None

    def __repr__(self) -> str:
        return f"ArtifactStore(directory={self._directory!r})"

    @property
    def directory(self) -> Path:
        if self._directory is None:
            self._directory = Path(tempfile.mkdtemp(prefix="artifact-chat-"))
            logger.debug("created artifact directory %s", self._directory)
        return self._directory

    def persist_and_locate(self, artifact: Artifact) -> Path:
        """Write the artifact's content to a uniquely named file."""
        self.directory.mkdir(parents=True, exist_ok=True)
        name = f"{slugify(artifact.title)}-{uuid.uuid4().hex[:8]}{artifact.extension}"
        path = self.directory / name
        path.write_text(artifact.content, encoding="utf-8")
        logger.info(
            "saved %s artifact %r to %s", artifact.kind.value, artifact.title, path
        )
        return path

    def open_externally(self, path: Path) -> bool:
        """Open a file with the default viewer. Returns False if none was found."""
        uri = path.resolve().as_uri()
        opened = webbrowser.open(uri)
        if not opened:
            logger.warning("no browser available to open %s", uri)
        return opened

    def open(self, artifact: Artifact) -> Path:
        """Persist an artifact and open it when it is viewable.

        Scripts are only saved; the returned path lets the caller show where.
        """
        path = self.persist_and_locate(artifact)
        if artifact.kind.viewable:
            self.open_externally(path)
        return path

    def cleanup(self) -> None:
        if self._owns_directory and self._directory is not None:
            shutil.rmtree(self._directory, ignore_errors=True)
            logger.debug("removed artifact directory %s", self._directory)
            self._directory = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.cleanup()
