# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/vehosts_runner

"""Preview assembly for static projects.

The entry HTML is scanned with a streaming tokenizer that records the exact
source span of every ``<link>`` and ``<script src>`` element. Local
stylesheets and scripts are then fetched from the artifact store and written
inline; anything that cannot be fetched is left exactly as written.
"""

import html
import posixpath
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Literal
from urllib.parse import unquote, urlsplit

from vehosts_runner.exceptions import (
    ArtifactNotFoundError,
    InvalidArtifactPathError,
    PreviewEntryMissingError,
    PreviewNotRunningError,
)
from vehosts_runner.models import PreviewDocument, Project, ProjectStatus, normalize_path
from vehosts_runner.storage import ArtifactStore, storage_key
from vehosts_runner.utils.logger import logger

_STYLE_CLOSE = re.compile(r"</(style)", re.IGNORECASE)
_SCRIPT_CLOSE = re.compile(r"</(script)", re.IGNORECASE)
_ESCAPED_CLOSE = r"<\\/\1"


@dataclass(frozen=True)
class AssetReference:
    """A local asset reference and its span in the source document."""

    kind: Literal["stylesheet", "script"]
    url: str
    start: int
    end: int
    attrs: dict[str, str]


def is_local_reference(url: str | None) -> bool:
    """True for references that point inside the project (no scheme, host, or ``//``)."""
    if not url or not url.strip():
        return False
    url = url.strip()
    if url.startswith(("//", "#")):
        return False
    parts = urlsplit(url)
    return not parts.scheme and not parts.netloc


def resolve_asset_path(entry_path: str, url: str) -> str | None:
    """Resolves ``url`` to an in-project path.

    Relative URLs resolve against the entry file's directory, absolute ones
    against the project root. Query strings and fragments are ignored.
    """
    path = unquote(urlsplit(url.strip()).path)
    if not path:
        return None
    if path.startswith("/"):
        joined = path
    else:
        joined = posixpath.join(posixpath.dirname(normalize_path(entry_path)), path)
    return normalize_path(posixpath.normpath(joined))


def candidate_asset_paths(entry_path: str, url: str) -> list[str]:
    """In-project paths to try for ``url``, in order.

    A relative URL from a nested entry file is tried beside the entry first,
    then at the project root. A leading ``/`` yields the root path only.
    """
    primary = resolve_asset_path(entry_path, url)
    if primary is None:
        return []
    candidates = [primary]
    if not url.strip().startswith("/"):
        fallback = resolve_asset_path("/", url)
        if fallback is not None and fallback != primary:
            candidates.append(fallback)
    return candidates


class AssetScanner(HTMLParser):
    """Collects stylesheet links and external scripts with their source spans."""

    def __init__(self, source: str):
        super().__init__(convert_charrefs=False)
        self.source = source
        self.references: list[AssetReference] = []
        self._line_starts = [0]
        for index, char in enumerate(source):
            if char == "\n":
                self._line_starts.append(index + 1)
        self._pending_script: tuple[int, str, dict[str, str]] | None = None

    def _offset(self) -> int:
        line, column = self.getpos()
        return self._line_starts[line - 1] + column

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        values = {name: value or "" for name, value in attrs}
        start = self._offset()
        raw = self.get_starttag_text() or ""

        if tag == "link":
            href = values.get("href", "")
            rel = values.get("rel", "").lower().split()
            is_stylesheet = "stylesheet" in rel or urlsplit(href.strip()).path.lower().endswith(".css")
            if is_stylesheet and is_local_reference(href):
                self.references.append(AssetReference("stylesheet", href, start, start + len(raw), values))
        elif tag == "script":
            src = values.get("src")
            if src is not None and is_local_reference(src):
                self._pending_script = (start, src, values)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        # A self-closed <script/> has no body and no end tag to pair with.
        if tag == "script":
            return
        self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag: str) -> None:
        if tag != "script" or self._pending_script is None:
            return
        start, src, values = self._pending_script
        self._pending_script = None
        end_tag_start = self._offset()
        close = self.source.find(">", end_tag_start)
        if close == -1:
            return
        self.references.append(AssetReference("script", src, start, close + 1, values))


def scan_assets(source: str) -> list[AssetReference]:
    """Returns the local asset references in ``source`` in document order."""
    scanner = AssetScanner(source)
    scanner.feed(source)
    scanner.close()
    return sorted(scanner.references, key=lambda ref: ref.start)


def render_inline(ref: AssetReference, content: str) -> str:
    if ref.kind == "stylesheet":
        media = ref.attrs.get("media")
        open_tag = f'<style media="{html.escape(media)}">' if media else "<style>"
        return open_tag + _STYLE_CLOSE.sub(_ESCAPED_CLOSE, content) + "</style>"

    script_type = ref.attrs.get("type")
    open_tag = f'<script type="{html.escape(script_type)}">' if script_type else "<script>"
    return open_tag + _SCRIPT_CLOSE.sub(_ESCAPED_CLOSE, content) + "</script>"


def render_console_placeholder(project: Project) -> str:
    """Static page shown in place of a preview for interpreted projects."""
    name = html.escape(project.name or project.slug)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "  <head>\n"
        '    <meta charset="UTF-8">\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"    <title>{name} console</title>\n"
        "  </head>\n"
        "  <body>\n"
        f"    <h1>Python Console - {name}</h1>\n"
        "    <p>The program is running. Open the Logs tab in the dashboard to see its output.</p>\n"
        '    <button onclick="window.location.reload()">Run again</button>\n'
        "  </body>\n"
        "</html>\n"
    )


class PreviewAssembler:
    """Builds a self-contained HTML document from a project's stored files."""

    def __init__(self, store: ArtifactStore):
        self.store = store

    async def _fetch_text(self, key: str) -> str | None:
        try:
            data = await self.store.get(key)
        except ArtifactNotFoundError:
            logger.debug(f"Preview asset missing: {key}")
            return None
        except Exception as e:
            logger.warning(f"Preview asset {key} could not be fetched: {e}")
            return None
        return data.decode("utf-8-sig", errors="replace")

    async def inline_assets(self, source: str, entry_path: str, owner_key: str, project_slug: str) -> PreviewDocument:
        """Replaces local stylesheet and script references with inline blocks.

        Args:
            source: The entry HTML.
            entry_path: In-project path of the entry file.
            owner_key: The owner's storage key.
            project_slug: The project slug.

        Returns:
            PreviewDocument: The assembled document and the inlined paths.
        """
        cache: dict[str, str | None] = {}
        pieces: list[str] = []
        inlined: list[str] = []
        cursor = 0

        for ref in scan_assets(source):
            path: str | None = None
            content: str | None = None
            for candidate in candidate_asset_paths(entry_path, ref.url):
                if candidate not in cache:
                    cache[candidate] = await self._fetch_text(storage_key(owner_key, project_slug, candidate))
                if cache[candidate] is not None:
                    path, content = candidate, cache[candidate]
                    break
            if path is None or content is None:
                continue

            pieces.append(source[cursor : ref.start])
            pieces.append(render_inline(ref, content))
            cursor = ref.end
            inlined.append(path)

        pieces.append(source[cursor:])
        return PreviewDocument(html="".join(pieces), inlined=inlined)

    async def assemble(self, project: Project, owner_key: str) -> PreviewDocument:
        """Assembles the preview document for a running HTML project.

        Raises:
            PreviewNotRunningError: If the project is not running.
            PreviewEntryMissingError: If the entry file is missing or its path
                leaves the project.
        """
        if project.status != ProjectStatus.RUNNING:
            raise PreviewNotRunningError(project.id, project.status.value)

        try:
            entry_key = storage_key(owner_key, project.slug, project.entry_path)
        except InvalidArtifactPathError as e:
            raise PreviewEntryMissingError(project.id, project.entry_path) from e

        try:
            raw = await self.store.get(entry_key)
        except ArtifactNotFoundError as e:
            raise PreviewEntryMissingError(project.id, entry_key) from e

        source = raw.decode("utf-8-sig", errors="replace")
        document = await self.inline_assets(source, project.entry_path, owner_key, project.slug)
        logger.info(f"Assembled preview for project {project.id} ({len(document.inlined)} asset(s) inlined)")
        return document
