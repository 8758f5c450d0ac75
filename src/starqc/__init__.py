"""
StarQC - star-field quality analysis for astronomical FITS exposures.

Given a raw FITS exposure, StarQC decodes the primary header, reads a handful
of tiles without loading the whole frame, detects stars and measures their
shape, and reports frame-level FWHM, elongation, background noise and a
tracking-error score. Results can be graded against quality thresholds.

Main Components:
    core: Analysis pipeline, quality grading and batch processing
    types: Type aliases and protocols
    exceptions: Exception hierarchy for error handling
    config: Configuration management with environment support
"""

__version__ = "1.0.0"

from .types import FilePath, ByteSource, ProgressCallback, AnalysisResultDict

from .exceptions import (
    StarQCError,
    FileProcessingError,
    FitsReadError,
    HeaderParseError,
    UnsupportedFormatError,
    AnalysisCancelledError,
    ConfigurationError,
    ValidationError,
)

from .config import (
    get_config,
    setup_logging,
    ConfigManager,
    StarQCConfig,
    AnalysisConfig,
    QualityThresholds,
)

from .core import (
    AnalysisOptions,
    FrameAnalysisResult,
    TileRequest,
    TileSummary,
    StarFieldAnalyzer,
    analyze_stars,
    analyze_files,
    assess_frame,
    FrameGrade,
)

__all__ = [
    # Analysis
    'analyze_stars',
    'analyze_files',
    'assess_frame',
    'AnalysisOptions',
    'FrameAnalysisResult',
    'TileRequest',
    'TileSummary',
    'StarFieldAnalyzer',
    'FrameGrade',

    # Type definitions
    'FilePath',
    'ByteSource',
    'ProgressCallback',
    'AnalysisResultDict',

    # Exceptions
    'StarQCError',
    'FileProcessingError',
    'FitsReadError',
    'HeaderParseError',
    'UnsupportedFormatError',
    'AnalysisCancelledError',
    'ConfigurationError',
    'ValidationError',

    # Configuration
    'get_config',
    'setup_logging',
    'ConfigManager',
    'StarQCConfig',
    'AnalysisConfig',
    'QualityThresholds',

    '__version__',
]
