"""
Core modules for StarQC.

The analysis pipeline, leaf-first:

- header: FITS header card decoding and data offset
- byte_source: random-access byte sources (files, memory buffers)
- pixel_reader: tile geometry and big-endian pixel decoding
- background: robust background level, noise and detection threshold
- detection: star seeding, region growing and moment-based shape fitting
- aggregate: frame-level percentiles and tracking-error proxy
- analyzer: the analyze_stars entry point and structured-result analyzer
- quality: scoring and grading of analyzed frames
- batch: concurrent analysis of many files
"""

from .header import FitsHeader, read_header, parse_card, parse_header_bytes
from .byte_source import FileByteSource, MemoryByteSource, open_byte_source
from .pixel_reader import ImageGeometry, TileRequest, clamp_tile, default_tiles, read_tile
from .background import BackgroundStats, estimate_background
from .detection import StarDetection, TileDetections, detect_stars, ellipse_axes, shape_from_axes
from .aggregate import FrameAnalysisResult, TileResult, TileSummary, aggregate_frame, tracking_error
from .analyzer import AnalysisOptions, StarFieldAnalyzer, analyze_source, analyze_stars
from .quality import (
    FrameGrade,
    QualityAssessment,
    assess_frame,
    classify_frame,
    quality_score,
    thresholds_from_reference,
    worst_tile,
)
from .batch import analyze_files, find_fits_files

__all__ = [
    'FitsHeader', 'read_header', 'parse_card', 'parse_header_bytes',
    'FileByteSource', 'MemoryByteSource', 'open_byte_source',
    'ImageGeometry', 'TileRequest', 'clamp_tile', 'default_tiles', 'read_tile',
    'BackgroundStats', 'estimate_background',
    'StarDetection', 'TileDetections', 'detect_stars', 'ellipse_axes', 'shape_from_axes',
    'FrameAnalysisResult', 'TileResult', 'TileSummary', 'aggregate_frame', 'tracking_error',
    'AnalysisOptions', 'StarFieldAnalyzer', 'analyze_source', 'analyze_stars',
    'FrameGrade', 'QualityAssessment', 'assess_frame', 'classify_frame', 'quality_score',
    'thresholds_from_reference', 'worst_tile',
    'analyze_files', 'find_fits_files',
]
