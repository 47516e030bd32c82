"""Thin client for The Movie Database (TMDB) REST API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from errors import TransientIOError


LOGGER = logging.getLogger(__name__)


DEFAULT_API_URL = 'https://api.themoviedb.org/3'
DEFAULT_IMAGE_BASE_URL = 'https://image.tmdb.org/t/p/'
DEFAULT_TIMEOUT = 10.0


@dataclass
class MetadataMatch:
    external_id: int
    title: str
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    popularity: float = 0.0

    @classmethod
    def from_result(cls, result: Dict[str, object]) -> 'MetadataMatch':
        try:
            popularity = float(result.get('popularity') or 0.0)
        except (TypeError, ValueError):
            popularity = 0.0
        return cls(
            external_id=int(result['id']),
            title=str(result.get('title') or result.get('original_title') or ''),
            overview=result.get('overview') or None,
            poster_path=result.get('poster_path') or None,
            backdrop_path=result.get('backdrop_path') or None,
            popularity=popularity,
        )


@dataclass
class ImageConfiguration:
    base_url: str = DEFAULT_IMAGE_BASE_URL
    poster_sizes: List[str] = field(default_factory=list)
    backdrop_sizes: List[str] = field(default_factory=list)


class TmdbClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        read_access_token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.read_access_token = read_access_token
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        if read_access_token:
            self.session.headers['Authorization'] = 'Bearer %s' % read_access_token
        self.session.headers.setdefault('Accept', 'application/json')

    @property
    def configured(self) -> bool:
        return bool(self.api_key or self.read_access_token)

    def _get(self, endpoint: str, params: Optional[Dict[str, object]] = None) -> Dict[str, object]:
        query = dict(params or {})
        if self.api_key and not self.read_access_token:
            query['api_key'] = self.api_key
        url = '%s/%s' % (self.api_url, endpoint.lstrip('/'))
        try:
            resp = self.session.get(url, params=query, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise TransientIOError('TMDB request to %s failed: %s' % (endpoint, exc)) from exc
        except ValueError as exc:
            raise TransientIOError('TMDB returned invalid JSON for %s' % endpoint) from exc
        if not isinstance(payload, dict):
            raise TransientIOError('TMDB returned an unexpected payload for %s' % endpoint)
        return payload

    def search(self, query: str, language: str = 'en-US', include_adult: bool = False) -> List[MetadataMatch]:
        """Search movies by title; results keep TMDB's order."""
        payload = self._get('search/movie', {
            'query': query,
            'language': language,
            'include_adult': 'true' if include_adult else 'false',
        })
        matches = []
        for result in payload.get('results') or []:
            if not isinstance(result, dict) or result.get('id') is None:
                continue
            try:
                matches.append(MetadataMatch.from_result(result))
            except (TypeError, ValueError):
                LOGGER.debug("Ignoring malformed TMDB result for %r: %r", query, result)
        LOGGER.debug("TMDB search %r returned %d results", query, len(matches))
        return matches

    def configuration(self) -> ImageConfiguration:
        payload = self._get('configuration')
        images = payload.get('images') or {}
        return ImageConfiguration(
            base_url=images.get('secure_base_url') or images.get('base_url') or DEFAULT_IMAGE_BASE_URL,
            poster_sizes=list(images.get('poster_sizes') or []),
            backdrop_sizes=list(images.get('backdrop_sizes') or []),
        )
