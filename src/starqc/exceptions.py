"""
Custom exceptions for StarQC.

Provides a hierarchy of exceptions for the star-field analyzer so callers can
tell I/O failures, malformed headers and unsupported pixel formats apart.
"""

from typing import Optional


class StarQCError(Exception):
    """Base exception for all StarQC errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, **kwargs):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = kwargs

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class FileProcessingError(StarQCError):
    """Raised when a FITS file cannot be analyzed."""

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.file_path = file_path


class FitsReadError(FileProcessingError):
    """Raised when a FITS file is missing or cannot be read."""

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "IO_ERROR")
        super().__init__(message, file_path=file_path, **kwargs)


class HeaderParseError(FileProcessingError):
    """Raised when the FITS header has no END card or lacks required keys."""

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "HEADER_PARSE_ERROR")
        super().__init__(message, file_path=file_path, **kwargs)


class UnsupportedFormatError(FileProcessingError):
    """Raised for pixel formats or geometries the reader cannot decode."""

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "UNSUPPORTED_FORMAT")
        super().__init__(message, file_path=file_path, **kwargs)


class AnalysisCancelledError(StarQCError):
    """Raised when a progress callback asks for the analysis to stop."""

    def __init__(self, message: str = "Analysis cancelled", **kwargs):
        kwargs.setdefault("error_code", "CANCELLED")
        super().__init__(message, **kwargs)


class ConfigurationError(StarQCError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(StarQCError):
    """Raised when caller-supplied options fail validation."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
