"""
Star-field quality analysis of a FITS exposure.

Pipeline per call: header decode -> for each tile (read -> background ->
detection) -> frame aggregation. Every call owns its file handle and buffers,
so concurrent calls on different files never share state.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..config import AnalysisConfig
from ..exceptions import AnalysisCancelledError, StarQCError, ValidationError
from ..types import AnalysisResultDict, ByteSource, FilePath, ProgressCallback
from .aggregate import FrameAnalysisResult, TileResult, aggregate_frame
from .background import DEFAULT_SAMPLE_LIMIT, estimate_background
from .byte_source import open_byte_source
from .detection import detect_stars
from .header import DEFAULT_MAX_BLOCKS, read_header
from .pixel_reader import MIN_TILE_SIDE, ImageGeometry, TileRequest, clamp_tile, default_tiles, read_tile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOptions:
    """Per-call analysis options."""
    crop_size: int = 768
    k_sigma: float = 4.0
    tiles: Optional[Tuple[TileRequest, ...]] = None
    max_header_blocks: int = DEFAULT_MAX_BLOCKS
    sample_limit: int = DEFAULT_SAMPLE_LIMIT
    min_tile_side: int = MIN_TILE_SIDE

    def __post_init__(self):
        if self.tiles is not None:
            object.__setattr__(self, "tiles", tuple(self.tiles))
        self.validate()

    def validate(self) -> None:
        if self.crop_size < self.min_tile_side:
            raise ValidationError(f"crop_size must be at least {self.min_tile_side}", field="crop_size")
        if not self.k_sigma > 0:
            raise ValidationError("k_sigma must be positive", field="k_sigma")
        if self.sample_limit < 1:
            raise ValidationError("sample_limit must be at least 1", field="sample_limit")
        if self.max_header_blocks < 1:
            raise ValidationError("max_header_blocks must be at least 1", field="max_header_blocks")
        if self.tiles is not None:
            for tile in self.tiles:
                if tile.w <= 0 or tile.h <= 0:
                    raise ValidationError(f"Tile {tile} has a non-positive size", field="tiles")

    @classmethod
    def from_config(cls, config: AnalysisConfig,
                    tiles: Optional[Sequence[TileRequest]] = None) -> "AnalysisOptions":
        return cls(
            crop_size=config.crop_size,
            k_sigma=config.k_sigma,
            tiles=tuple(tiles) if tiles is not None else None,
            max_header_blocks=config.max_header_blocks,
            sample_limit=config.sample_limit,
            min_tile_side=config.min_tile_side,
        )


def _report(progress_callback: Optional[ProgressCallback], current: int, total: int, message: str,
            cancellable: bool = True) -> None:
    if progress_callback is None:
        return
    if progress_callback(current, total, message) is False and cancellable:
        raise AnalysisCancelledError(f"Analysis cancelled at step {current}/{total}: {message}")


def analyze_source(source: ByteSource, options: Optional[AnalysisOptions] = None,
                   progress_callback: Optional[ProgressCallback] = None,
                   file_path: Optional[str] = None) -> FrameAnalysisResult:
    """
    Analyze a FITS image available through a random-access byte source.

    Args:
        source: Byte source positioned over the whole FITS file
        options: Analysis options (defaults used when None)
        progress_callback: Optional callable(current, total, message) -> bool
        file_path: Used only for log and error messages

    Returns:
        FrameAnalysisResult: Whole-frame star statistics

    Raises:
        HeaderParseError, UnsupportedFormatError, FitsReadError, AnalysisCancelledError
    """
    options = options or AnalysisOptions()

    _report(progress_callback, 0, 1, "Reading FITS header...")
    header, data_offset = read_header(source, max_blocks=options.max_header_blocks, file_path=file_path)
    geometry = ImageGeometry.from_header(header, data_offset, file_path=file_path)
    logger.debug(f"{file_path or 'image'}: {geometry.width}x{geometry.height} BITPIX={geometry.bitpix} "
                 f"BSCALE={geometry.bscale} BZERO={geometry.bzero}")

    requested = options.tiles if options.tiles is not None else default_tiles(
        geometry.width, geometry.height, options.crop_size)
    tiles = [clamp_tile(tile, geometry.width, geometry.height, options.min_tile_side) for tile in requested]

    results = []
    total = len(tiles) + 1
    for index, tile in enumerate(tiles, start=1):
        _report(progress_callback, index, total, f"Analyzing tile {index}/{len(tiles)}...")
        samples = read_tile(source, geometry, tile)
        background = estimate_background(samples, k_sigma=options.k_sigma, sample_limit=options.sample_limit)
        detections = detect_stars(samples, background)
        logger.debug(f"Tile ({tile.x},{tile.y} {tile.w}x{tile.h}): median={background.median:.2f} "
                     f"sigma={background.sigma:.2f} threshold={background.threshold:.2f} "
                     f"stars={detections.star_count}")
        results.append(TileResult(tile=tile, background=background, detections=detections))

    frame = aggregate_frame(results)
    # The frame is finished; a False return here no longer cancels
    _report(progress_callback, total, total, "Star analysis completed!", cancellable=False)
    return frame


def analyze_stars(file_path: FilePath, options: Optional[AnalysisOptions] = None,
                  progress_callback: Optional[ProgressCallback] = None) -> FrameAnalysisResult:
    """
    Analyze star shapes in a FITS file.

    The file is opened once and closed on every exit path.

    Args:
        file_path: Path to the FITS file
        options: Analysis options (crop size, k-sigma, explicit tiles)
        progress_callback: Optional callable(current, total, message) -> bool;
            returning False cancels the analysis

    Returns:
        FrameAnalysisResult

    Raises:
        FitsReadError: File missing or unreadable
        HeaderParseError: No END card or required keywords missing
        UnsupportedFormatError: Unsupported BITPIX or empty image
        AnalysisCancelledError: Cancelled through the progress callback
    """
    path = str(file_path)
    with open_byte_source(path) as source:
        result = analyze_source(source, options, progress_callback, file_path=path)

    if result.star_count == 0:
        logger.warning(f"No stars detected in {path}")
    logger.info(f"Analyzed {path}: {result.star_count} stars, FWHM {result.fwhm:.2f}px, "
                f"elongation p90 {result.star_elongation_p90:.2f}, tracking {result.tracking_error:.2f}")
    return result


def failure_dict(error: StarQCError, file_path: str) -> AnalysisResultDict:
    """Structured failure record for a StarQC exception."""
    if isinstance(error, AnalysisCancelledError):
        status = "cancelled"
    else:
        status = "error"
    return {
        "status": status,
        "message": error.message,
        "error_code": error.error_code,
        "file_path": getattr(error, "file_path", None) or file_path,
    }


class StarFieldAnalyzer:
    """
    Star-field analyzer with a structured, non-raising result interface.

    Host applications call analyze_image_quality and inspect ``status``
    instead of handling exceptions.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        """Initialize the analyzer from analysis settings."""
        self.config = config or AnalysisConfig()

    def options(self, tiles: Optional[Sequence[TileRequest]] = None) -> AnalysisOptions:
        return AnalysisOptions.from_config(self.config, tiles=tiles)

    def analyze_image_quality(self, fits_file_path: FilePath,
                              progress_callback: Optional[ProgressCallback] = None,
                              options: Optional[AnalysisOptions] = None) -> AnalysisResultDict:
        """
        Analyze one file and return a structured record.

        Returns:
            dict: ``status`` is "success", "error" or "cancelled". On success
            the camelCase frame result fields are included; on failure
            ``message``, ``error_code`` and ``file_path``.
        """
        path = str(fits_file_path)
        try:
            result = analyze_stars(path, options or self.options(), progress_callback)
        except AnalysisCancelledError as e:
            logger.info(f"Analysis of {path} cancelled")
            return failure_dict(e, path)
        except StarQCError as e:
            logger.error(f"Error analyzing {path}: {e}")
            return failure_dict(e, path)
        except Exception as e:
            logger.exception(f"Unexpected error analyzing {path}")
            return failure_dict(StarQCError(str(e), error_code="INTERNAL_ERROR"), path)

        record: Dict = {"status": "success", "file_path": path}
        record.update(result.to_dict())
        return record
