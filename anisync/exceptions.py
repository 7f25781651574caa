"""AniSync exception classes."""


class AniSyncError(Exception):
    """Base class for all AniSync exceptions."""

    # Default HTTP status for API responses
    status_code: int = 500


# Configuration errors
class ConfigError(AniSyncError):
    """Base class for configuration-related errors."""

    status_code = 500


class UserNotFoundError(ConfigError, KeyError):
    """Requested user is not present in the configuration."""

    status_code = 404


class MissingCredentialsError(ConfigError, ValueError):
    """A run was requested for a user without the credentials it needs."""

    status_code = 401


class DataPathError(ConfigError, ValueError):
    """The configured data directory path is invalid for the requested operation."""

    status_code = 400


# Database errors
class DatabaseError(AniSyncError):
    """Base class for database-related errors."""

    status_code = 500


class UnsupportedModeError(DatabaseError, ValueError):
    """Unsupported mode value was provided when dumping a database model."""

    status_code = 400


class RecordNotFoundError(DatabaseError, KeyError):
    """An anime record could not be found in the local store."""

    status_code = 404


# Mapping errors
class MappingError(AniSyncError):
    """Base class for id mapping failures."""

    status_code = 500


class MappingNotFoundError(MappingError, KeyError):
    """No mapping entry exists for the requested id."""

    status_code = 404


class MappingConflictError(MappingError, ValueError):
    """A manual mapping collides with an existing mapping."""

    status_code = 409


class ExternalMappingError(MappingError):
    """An external id mapping service could not be queried or parsed."""

    status_code = 502


# Bulk dataset errors
class DatasetError(AniSyncError):
    """Base class for bulk mapping dataset failures."""

    status_code = 500


class InvalidDatasetFormatError(DatasetError, ValueError):
    """The bulk dataset document does not have the expected shape."""

    status_code = 400


class DatasetFetchError(DatasetError):
    """The bulk dataset could not be downloaded or read."""

    status_code = 502


# List source (MyAnimeList) errors
class ListSourceError(AniSyncError):
    """Base class for remote list source failures."""

    status_code = 502


class ListSourceUnauthorizedError(ListSourceError, PermissionError):
    """The list source rejected the user's credentials."""

    status_code = 401


class ListSourceTokenExpiredError(ListSourceUnauthorizedError):
    """The user's list source access token has expired."""

    status_code = 401


class ListSourceNetworkError(ListSourceError, ConnectionError):
    """The list source could not be reached or returned an error."""

    status_code = 502


class ListSourceTimeoutError(ListSourceError, TimeoutError):
    """A list source request exceeded its timeout."""

    status_code = 504


# Library source (Jellyfin) errors
class LibrarySourceError(AniSyncError):
    """Base class for library server failures."""

    status_code = 502


class LibrarySourceUnauthorizedError(LibrarySourceError, PermissionError):
    """The library server rejected the configured API key."""

    status_code = 401


class LibrarySourceNetworkError(LibrarySourceError, ConnectionError):
    """The library server could not be reached or returned an error."""

    status_code = 502


class LibrarySourceTimeoutError(LibrarySourceError, TimeoutError):
    """A library server request exceeded its timeout."""

    status_code = 504


# Sync errors
class SyncError(AniSyncError):
    """Base class for sync run failures."""

    status_code = 500


class SyncAbortedError(SyncError):
    """A sync run could not obtain its top-level enumeration and was aborted."""

    status_code = 502


class SessionNotFoundError(SyncError, KeyError):
    """No progress session exists for the requested id."""

    status_code = 404
