"""Match pending catalog entries against TMDB, one query per entry per pass."""
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, Iterable, Optional

from catalog import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH, CatalogEntry, CatalogStore
from errors import CatalogValidationError, TransientIOError
from memo_cache import MemoCache
from metadata_client import DEFAULT_IMAGE_BASE_URL, MetadataMatch, TmdbClient
from title_normalizer import is_escalation_of, mutate, sanitize


LOGGER = logging.getLogger(__name__)


DEFAULT_MAX_ATTEMPTS = 6
CONFIGURATION_CACHE_KEY = 'tmdb:configuration'
CONFIGURATION_CACHE_TIMEOUT = 24 * 60 * 60

RESOLVED = 'resolved'
UNRESOLVED = 'unresolved'
UNRESOLVABLE = 'unresolvable'


def build_image_url(base_url: str, size: str, relative_path: Optional[str]) -> Optional[str]:
    if not relative_path:
        return None
    base = base_url if base_url.endswith('/') else base_url + '/'
    return base + size + relative_path


def select_match(matches: Iterable[MetadataMatch], min_popularity: float = 0.0) -> Optional[MetadataMatch]:
    """Most popular match at or above ``min_popularity``; ties keep service order."""
    ranked = sorted(
        (match for match in matches if match.popularity >= min_popularity),
        key=lambda match: match.popularity,
        reverse=True,
    )
    return ranked[0] if ranked else None


def next_query(entry: CatalogEntry) -> str:
    """Query for the next attempt on ``entry``.

    A stored ``search_title`` means that query already failed, so the next
    attempt drops one more trailing word from it.
    """
    candidate = sanitize(entry.title)
    previous = entry.search_title
    if previous is not None and is_escalation_of(previous, candidate):
        return mutate(previous)
    return candidate


class MetadataResolver:
    def __init__(
        self,
        store: CatalogStore,
        client: TmdbClient,
        language: str = 'en-US',
        include_adult: bool = False,
        poster_size: str = 'w500',
        backdrop_size: str = 'w780',
        image_base_url: Optional[str] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_popularity: float = 0.0,
        cache: Optional[MemoCache] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.language = language
        self.include_adult = include_adult
        self.poster_size = poster_size
        self.backdrop_size = backdrop_size
        self.image_base_url_override = image_base_url
        self.max_attempts = max_attempts
        self.min_popularity = min_popularity
        self.cache = cache or MemoCache(None)

    def image_base_url(self) -> str:
        if self.image_base_url_override:
            return self.image_base_url_override
        try:
            configuration = self.cache.get_or_compute(
                CONFIGURATION_CACHE_KEY,
                self.client.configuration,
                timeout=CONFIGURATION_CACHE_TIMEOUT,
            )
        except TransientIOError as exc:
            LOGGER.warning("Falling back to default TMDB image URL: %s", exc)
            return DEFAULT_IMAGE_BASE_URL
        return configuration.base_url

    def _apply_match(self, entry: CatalogEntry, match: MetadataMatch) -> CatalogEntry:
        base_url = self.image_base_url()
        description = match.overview[:DESCRIPTION_MAX_LENGTH] if match.overview else None
        return dataclasses.replace(
            entry,
            external_id=match.external_id,
            title=(match.title or entry.title)[:TITLE_MAX_LENGTH],
            description=description,
            poster=build_image_url(base_url, self.poster_size, match.poster_path),
            backdrop=build_image_url(base_url, self.backdrop_size, match.backdrop_path),
            needs_resync=False,
            unresolvable=False,
        )

    def resolve_entry(self, entry: CatalogEntry) -> str:
        """Make one resolution attempt for ``entry`` and persist the outcome."""
        query = next_query(entry)
        if not query or query == entry.search_title:
            LOGGER.info("Giving up on %s: no query left to try (last %r)", entry.path, entry.search_title)
            self.store.save(dataclasses.replace(entry, search_title=query, unresolvable=True))
            return UNRESOLVABLE

        matches = self.client.search(query, language=self.language, include_adult=self.include_adult)
        match = select_match(matches, self.min_popularity)

        if match is None:
            attempts = entry.resolve_attempts + 1
            exhausted = attempts >= self.max_attempts
            LOGGER.info("No TMDB match for %r (%s), attempt %d", query, entry.path, attempts)
            self.store.save(dataclasses.replace(
                entry,
                search_title=query,
                resolve_attempts=attempts,
                unresolvable=exhausted,
            ))
            return UNRESOLVABLE if exhausted else UNRESOLVED

        updated = self._apply_match(entry, match)
        updated.resolve_attempts = entry.resolve_attempts + 1
        self.store.save(updated)
        LOGGER.info("Matched %s to TMDB %s (%s)", entry.path, match.external_id, updated.title)
        return RESOLVED

    def resolve_pending(self) -> Dict[str, int]:
        """Run one resolution pass over every pending entry.

        A failure on one entry is logged and counted; the pass carries on
        with the next entry.
        """
        summary = {
            'pending': 0,
            RESOLVED: 0,
            UNRESOLVED: 0,
            UNRESOLVABLE: 0,
            'errors': 0,
        }
        entries = self.store.find_pending()
        summary['pending'] = len(entries)
        for entry in entries:
            try:
                outcome = self.resolve_entry(entry)
            except TransientIOError as exc:
                LOGGER.warning("Skipping %s this pass: %s", entry.path, exc)
                summary['errors'] += 1
                continue
            except CatalogValidationError as exc:
                LOGGER.warning("Rejected metadata for %s: %s", entry.path, exc)
                summary['errors'] += 1
                continue
            except Exception:  # pragma: no cover - defensive
                LOGGER.exception("Failed to resolve %s", entry.path)
                summary['errors'] += 1
                continue
            summary[outcome] += 1
        return summary
