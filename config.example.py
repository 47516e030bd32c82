# Directories scanned (recursively) for media files.
LIBRARY_PATHS = [
    '/path/to/your/media/library1',
]

# File extensions treated as media, case-insensitive.
MEDIA_EXTENSIONS = ['.mp4', '.mkv', '.avi', '.mp3', '.flac']

# MongoDB connection. Either 'uri' or 'host' can be given.
MONGO = {
    'host': ['127.0.0.1:27017'],
    'database': 'medialib',
}

# The Movie Database credentials and lookup options.
TMDB = {
    'api_key': '',
    'read_access_token': '',
    'language': 'en-US',
    'include_adult': False,
    'poster_size': 'w500',
    'backdrop_size': 'w780',
    'timeout': 10,
}

# VLC HTTP interface (enable it with --extraintf http --http-password ...).
VLC = {
    'url': 'http://localhost:8081/requests/status.xml',
    'password': 'your_vlc_password_here',
    'timeout': 5,
    'seek_step': 10,
    'volume_step': 10,
}

# Flask-Caching configuration for the library listing.
CACHE = {
    'CACHE_TYPE': 'SimpleCache',
}
LIBRARY_CACHE_TIMEOUT = 60

# Uncomment to keep the cache in Redis instead.
# REDIS = {
#     'CACHE_TYPE': 'RedisCache',
#     'CACHE_REDIS_HOST': '127.0.0.1',
#     'CACHE_REDIS_PORT': 6379,
#     'CACHE_REDIS_PASSWORD': None,
#     'CACHE_REDIS_DB': None,
# }

# Resolution passes allowed before an entry is marked unresolvable.
MAX_RESOLVE_ATTEMPTS = 6

# Ignore TMDB matches less popular than this (0 accepts everything).
MIN_POPULARITY = 0

# Run a sync when the server starts.
SYNC_ON_START = True

# Token required by POST /api/admin/sync.
ADMIN_SYNC_TOKEN = 'change-me'
