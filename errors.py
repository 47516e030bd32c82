"""Exception types shared by the media library components."""


class MediaLibraryError(Exception):
    pass


class TransientIOError(MediaLibraryError):
    """Filesystem or network trouble; the caller logs it and moves on."""


class CatalogValidationError(MediaLibraryError):
    def __init__(self, field, message):
        super().__init__('%s: %s' % (field, message))
        self.field = field
        self.message = message
