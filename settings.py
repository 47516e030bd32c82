"""Configuration loading and construction of the application context."""
from __future__ import annotations

import importlib
import importlib.util
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Dict, List, Mapping, Optional

import requests
from flask_caching import Cache
from pymongo import MongoClient
from pymongo.database import Database

from catalog import CatalogReconciler, CatalogStore
from library import LibraryService
from media_scanner import DEFAULT_MEDIA_EXTENSIONS, MediaScanner
from memo_cache import MemoCache
from metadata_client import DEFAULT_API_URL, TmdbClient
from metadata_resolver import DEFAULT_MAX_ATTEMPTS, MetadataResolver
from playback import DEFAULT_VLC_URL, PlaybackController
from sync_pipeline import SyncPipeline


def load_config_module(environ: Mapping[str, str] = os.environ) -> ModuleType:
    """Load configuration module from several possible locations."""

    module_name = environ.get("MEDIALIB_CONFIG_MODULE")
    search_order = []
    if module_name:
        search_order.append(module_name)
    search_order.extend(["config.config", "config"])

    for name in search_order:
        try:
            return importlib.import_module(name)
        except ModuleNotFoundError:
            continue

    path_candidates = [
        Path(environ.get("MEDIALIB_CONFIG_PATH", "config.py")),
        Path("config/config.py"),
    ]
    for config_path in path_candidates:
        if not config_path.exists():
            continue
        spec = importlib.util.spec_from_file_location("config", config_path)
        if spec and spec.loader:
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)  # type: ignore[attr-defined]
            return module

    raise FileNotFoundError('No such file or directory: \'config.py\'. Copy the example config file config.example.py to config.py')


def take_config(config, name, required=False):
    if hasattr(config, name):
        return getattr(config, name)
    if required:
        raise ValueError('Required option is not defined in the config.py file: {}'.format(name))
    return None


def _coerce_bool(value, default):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if not text:
        return default
    return text not in {'0', 'false', 'no', 'off'}


@dataclass(frozen=True)
class Settings:
    library_paths: List[str]
    media_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_MEDIA_EXTENSIONS))
    mongo_uri: Optional[str] = None
    mongo_host: Optional[List[str]] = None
    mongo_database: str = 'medialib'
    tmdb_api_key: Optional[str] = None
    tmdb_read_access_token: Optional[str] = None
    tmdb_api_url: str = DEFAULT_API_URL
    tmdb_language: str = 'en-US'
    tmdb_include_adult: bool = False
    tmdb_poster_size: str = 'w500'
    tmdb_backdrop_size: str = 'w780'
    tmdb_image_base_url: Optional[str] = None
    tmdb_timeout: float = 10.0
    vlc_url: str = DEFAULT_VLC_URL
    vlc_password: str = ''
    vlc_timeout: float = 5.0
    vlc_seek_step: int = 10
    vlc_volume_step: int = 10
    cache_config: Dict[str, object] = field(default_factory=lambda: {'CACHE_TYPE': 'SimpleCache'})
    library_cache_timeout: int = 60
    max_resolve_attempts: int = DEFAULT_MAX_ATTEMPTS
    min_popularity: float = 0.0
    sync_on_start: bool = True
    admin_sync_token: Optional[str] = None


def build_settings(config, environ: Mapping[str, str] = os.environ) -> Settings:
    library_paths_env = environ.get('MEDIALIB_LIBRARY_PATHS')
    if library_paths_env:
        library_paths = [path for path in library_paths_env.split(os.pathsep) if path]
    else:
        library_paths = list(take_config(config, 'LIBRARY_PATHS', required=True))

    mongo_config = take_config(config, 'MONGO') or {}
    mongo_host = environ.get('MEDIALIB_MONGO_HOST') or mongo_config.get('host')
    if isinstance(mongo_host, str):
        mongo_host = [mongo_host]

    tmdb_config = take_config(config, 'TMDB') or {}
    vlc_config = take_config(config, 'VLC') or {}

    cache_config = dict(take_config(config, 'CACHE') or {'CACHE_TYPE': 'SimpleCache'})
    redis_config = take_config(config, 'REDIS')
    if redis_config:
        cache_config = dict(redis_config)
        cache_config.setdefault('CACHE_TYPE', 'RedisCache')
        redis_host_env = environ.get('MEDIALIB_REDIS_HOST')
        if redis_host_env:
            cache_config['CACHE_REDIS_HOST'] = redis_host_env
        redis_port_env = environ.get('MEDIALIB_REDIS_PORT')
        if redis_port_env:
            cache_config['CACHE_REDIS_PORT'] = int(redis_port_env)

    min_popularity = take_config(config, 'MIN_POPULARITY')
    max_attempts = take_config(config, 'MAX_RESOLVE_ATTEMPTS')

    return Settings(
        library_paths=library_paths,
        media_extensions=list(take_config(config, 'MEDIA_EXTENSIONS') or DEFAULT_MEDIA_EXTENSIONS),
        mongo_uri=environ.get('MEDIALIB_MONGO_URI') or mongo_config.get('uri'),
        mongo_host=mongo_host,
        mongo_database=environ.get('MEDIALIB_MONGO_DB') or mongo_config.get('database') or 'medialib',
        tmdb_api_key=environ.get('TMDB_API_KEY') or tmdb_config.get('api_key'),
        tmdb_read_access_token=environ.get('TMDB_READ_ACCESS_TOKEN') or tmdb_config.get('read_access_token'),
        tmdb_api_url=tmdb_config.get('api_url') or DEFAULT_API_URL,
        tmdb_language=tmdb_config.get('language') or 'en-US',
        tmdb_include_adult=_coerce_bool(tmdb_config.get('include_adult'), False),
        tmdb_poster_size=tmdb_config.get('poster_size') or 'w500',
        tmdb_backdrop_size=tmdb_config.get('backdrop_size') or 'w780',
        tmdb_image_base_url=tmdb_config.get('image_base_url'),
        tmdb_timeout=float(tmdb_config.get('timeout') or 10.0),
        vlc_url=environ.get('VLC_URL') or vlc_config.get('url') or DEFAULT_VLC_URL,
        vlc_password=environ.get('VLC_PASSWORD') or vlc_config.get('password') or '',
        vlc_timeout=float(vlc_config.get('timeout') or 5.0),
        vlc_seek_step=int(vlc_config.get('seek_step') or 10),
        vlc_volume_step=int(vlc_config.get('volume_step') or 10),
        cache_config=cache_config,
        library_cache_timeout=int(take_config(config, 'LIBRARY_CACHE_TIMEOUT') or 60),
        max_resolve_attempts=int(max_attempts) if max_attempts else DEFAULT_MAX_ATTEMPTS,
        min_popularity=float(min_popularity or 0.0),
        sync_on_start=_coerce_bool(environ.get('SYNC_ON_START'), _coerce_bool(take_config(config, 'SYNC_ON_START'), True)),
        admin_sync_token=environ.get('ADMIN_SYNC_TOKEN') or take_config(config, 'ADMIN_SYNC_TOKEN'),
    )


@dataclass
class AppContext:
    settings: Settings
    db: Database
    cache: MemoCache
    scanner: MediaScanner
    store: CatalogStore
    reconciler: CatalogReconciler
    resolver: Optional[MetadataResolver]
    controller: PlaybackController
    library: LibraryService
    pipeline: SyncPipeline
    mongo_client: Optional[MongoClient] = None


def connect_database(settings: Settings):
    if settings.mongo_uri:
        client = MongoClient(settings.mongo_uri)
    else:
        client = MongoClient(host=settings.mongo_host or ['127.0.0.1:27017'])
    return client, client[settings.mongo_database]


def build_context(settings: Settings, db: Optional[Database] = None, cache: Optional[Cache] = None) -> AppContext:
    """Wire every component once; the result is handed to whoever needs it."""
    mongo_client = None
    if db is None:
        mongo_client, db = connect_database(settings)

    memo = MemoCache(cache, timeout=settings.library_cache_timeout)
    scanner = MediaScanner(settings.library_paths, settings.media_extensions)
    store = CatalogStore(db.media, db.seq)
    reconciler = CatalogReconciler(store)

    resolver = None
    if settings.tmdb_api_key or settings.tmdb_read_access_token:
        client = TmdbClient(
            api_key=settings.tmdb_api_key,
            read_access_token=settings.tmdb_read_access_token,
            api_url=settings.tmdb_api_url,
            timeout=settings.tmdb_timeout,
            session=requests.Session(),
        )
        resolver = MetadataResolver(
            store,
            client,
            language=settings.tmdb_language,
            include_adult=settings.tmdb_include_adult,
            poster_size=settings.tmdb_poster_size,
            backdrop_size=settings.tmdb_backdrop_size,
            image_base_url=settings.tmdb_image_base_url,
            max_attempts=settings.max_resolve_attempts,
            min_popularity=settings.min_popularity,
            cache=memo,
        )

    controller = PlaybackController(
        url=settings.vlc_url,
        password=settings.vlc_password,
        timeout=settings.vlc_timeout,
        seek_step=settings.vlc_seek_step,
        volume_step=settings.vlc_volume_step,
        session=requests.Session(),
    )
    library = LibraryService(scanner, store, memo)
    pipeline = SyncPipeline(scanner, reconciler, resolver, store, library)

    return AppContext(
        settings=settings,
        db=db,
        cache=memo,
        scanner=scanner,
        store=store,
        reconciler=reconciler,
        resolver=resolver,
        controller=controller,
        library=library,
        pipeline=pipeline,
        mongo_client=mongo_client,
    )
