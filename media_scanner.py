"""Media file discovery for the configured library roots."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional


LOGGER = logging.getLogger(__name__)


DEFAULT_MEDIA_EXTENSIONS = [
    ".mp4",
    ".mkv",
    ".avi",
    ".mp3",
    ".flac",
]


@dataclass(frozen=True)
class MediaFile:
    name: str
    path: str
    parent: str

    @property
    def stem(self) -> str:
        return Path(self.name).stem


def _normalise_extensions(extensions: Iterable[str]) -> List[str]:
    normalised = []
    for ext in extensions:
        token = (ext or "").strip().lower()
        if not token:
            continue
        if not token.startswith("."):
            token = "." + token
        if token not in normalised:
            normalised.append(token)
    return normalised


class MediaScanner:
    def __init__(
        self,
        library_paths: Iterable[str],
        media_extensions: Optional[Iterable[str]] = None,
    ) -> None:
        self.library_paths = [Path(path).expanduser() for path in library_paths]
        self.media_extensions = _normalise_extensions(
            DEFAULT_MEDIA_EXTENSIONS if media_extensions is None else media_extensions
        )

    def _iter_directory(self, directory: Path) -> Iterator[MediaFile]:
        try:
            children = list(directory.iterdir())
        except OSError as exc:
            LOGGER.warning("Skipping unreadable directory %s: %s", directory, exc)
            return
        for child in children:
            try:
                if child.is_dir():
                    if child.is_symlink():
                        LOGGER.debug("Skipping symlinked directory %s", child)
                        continue
                    yield from self._iter_directory(child)
                elif child.is_file() and child.suffix.lower() in self.media_extensions:
                    yield MediaFile(name=child.name, path=str(child), parent=str(directory))
            except OSError as exc:
                LOGGER.warning("Skipping unreadable entry %s: %s", child, exc)

    def _iter_root(self, root: Path) -> Iterator[MediaFile]:
        if not root.exists():
            LOGGER.warning("Library path %s does not exist", root)
            return
        if not root.is_dir():
            LOGGER.warning("Library path %s is not a directory", root)
            return
        yield from self._iter_directory(root)

    def scan(self, name_filter: Optional[str] = None) -> List[MediaFile]:
        """Return every media file under the library roots, sorted by name.

        Roots that are missing or unreadable are logged and contribute
        nothing. ``name_filter`` keeps only files whose name contains it,
        ignoring case.
        """
        files: List[MediaFile] = []
        for root in self.library_paths:
            files.extend(self._iter_root(root))

        if name_filter:
            needle = name_filter.casefold()
            files = [media for media in files if needle in media.name.casefold()]

        files.sort(key=lambda media: (media.name.casefold(), media.path))
        LOGGER.debug("Scanned %d media files from %d roots", len(files), len(self.library_paths))
        return files
