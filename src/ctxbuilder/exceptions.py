class CtxBuilderError(Exception):
    """Base exception for all application-specific errors."""

    pass


# --- 1. Errors related to loading and validating configuration ---
class ConfigurationError(CtxBuilderError):
    """Raised for missing or invalid required configuration (base image, recipe file, assembly count)."""

    pass


class ConfigFileMissingError(ConfigurationError):
    """Raised when the main configuration file cannot be found."""

    pass


class ConfigParsingError(ConfigurationError):
    """Raised when a YAML configuration file is syntactically incorrect."""

    pass


class ConfigValidationError(ConfigurationError):
    """Raised when the configuration fails structural validation (e.g., Pydantic)."""

    pass


# --- 2. Errors raised while resolving an assembly ---
class AssemblyResolutionError(CtxBuilderError):
    """Raised when the assembly resolver cannot produce an assembly."""

    pass


# --- 3. Errors related to IO operations ---
class FilesystemError(CtxBuilderError):
    """Base class for directory/file creation, copy, or cleanup failures."""

    pass


class InvalidPathError(FilesystemError):
    """Raised when a path is invalid or escapes its expected root."""

    pass


class CtxPathExistsError(FilesystemError):
    """Raised when a file or directory already exists."""

    pass


class CtxPathNotFoundError(FilesystemError):
    """Raised when a file or directory is not found."""

    pass


class CtxNotAFileError(FilesystemError):
    """Raised when a file is expected, but a directory is found."""

    pass


class CtxNotADirectoryError(FilesystemError):
    """Raised when a directory is expected, but a file is found."""

    pass


# --- 4. Errors related to archive creation ---
class ArchiveError(CtxBuilderError):
    """Raised when an archive cannot be created."""

    pass


class UnsupportedFormatError(ArchiveError):
    """Raised when the requested archive format or compression is not available."""

    pass
