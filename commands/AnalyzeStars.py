#!/usr/bin/env python3
r"""AnalyzeStars.py - Command line utility for star-field quality analysis of FITS sub-frames.

Measures star count, FWHM, elongation, background noise and tracking error for
each input file, grades it, and optionally writes all results as JSON.

Examples:
    .venv\Scripts\python commands\AnalyzeStars.py path\to\image.fits
    .venv\Scripts\python commands\AnalyzeStars.py path\to\folder --glob "*.fit" --threads 8
    .venv\Scripts\python commands\AnalyzeStars.py path\to\folder --reference best.fits --json report.json
    .venv\Scripts\python commands\AnalyzeStars.py image.fits --tile 0,0,512,512 --tile 1024,1024,512,512
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional


# Configure Python path for the src layout - must be before any starqc imports
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(project_root, "src")

if src_path in sys.path:
    sys.path.remove(src_path)
sys.path.insert(0, src_path)


def setup_logging(verbose: bool = False) -> logging.Logger:
    from starqc.config import LogLevel, get_config
    from starqc.config import setup_logging as configure_logging

    logging_config = get_config().logging
    if verbose:
        logging_config.level = LogLevel.DEBUG
    configure_logging(logging_config)
    return logging.getLogger(__name__)


def _iter_inputs(path_or_file: str, glob_pattern: Optional[str]) -> List[str]:
    if os.path.isdir(path_or_file):
        if glob_pattern is None:
            from starqc.core.batch import find_fits_files

            return [str(p) for p in find_fits_files(path_or_file)]
        import glob

        return sorted(glob.glob(os.path.join(path_or_file, "**", glob_pattern), recursive=True))
    return [path_or_file]


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Star-field quality analysis (FWHM, elongation, tracking) for FITS sub-frames",
    )
    parser.add_argument("input", help="Input FITS file or a directory")
    parser.add_argument(
        "--glob",
        default=None,
        help="Glob pattern when input is a directory (default: any .fits/.fit/.fts, case-insensitive)",
    )
    parser.add_argument("--crop-size", type=int, default=None, help="Maximum tile side in pixels (default from config, 768)")
    parser.add_argument("--k-sigma", type=float, default=None, help="Detection threshold in robust sigmas (default from config, 4.0)")
    parser.add_argument(
        "--tile",
        action="append",
        default=None,
        metavar="X,Y,W,H",
        help="Analyze this tile instead of the default centre + corners layout (repeatable)",
    )
    parser.add_argument("--threads", type=int, default=None, help="Parallel analyses (default from config)")
    parser.add_argument("--reference", default=None, help="Known-good frame used to derive grading thresholds")
    parser.add_argument("--json", dest="json_path", default=None, help="Write all results to this JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    logger = setup_logging(args.verbose)

    from starqc.config import get_config
    from starqc.core.analyzer import AnalysisOptions, analyze_stars
    from starqc.core.batch import analyze_files
    from starqc.core.pixel_reader import TileRequest
    from starqc.core.quality import assess_frame, thresholds_from_reference
    from starqc.core.aggregate import FrameAnalysisResult
    from starqc.exceptions import StarQCError

    config = get_config()
    analysis = config.analysis
    try:
        tiles = [TileRequest.parse(t) for t in args.tile] if args.tile else None
        options = AnalysisOptions(
            crop_size=args.crop_size if args.crop_size is not None else analysis.crop_size,
            k_sigma=args.k_sigma if args.k_sigma is not None else analysis.k_sigma,
            tiles=tiles,
            max_header_blocks=analysis.max_header_blocks,
            sample_limit=analysis.sample_limit,
            min_tile_side=analysis.min_tile_side,
        )
    except StarQCError as e:
        logger.error(f"Invalid options: {e}")
        return 2

    thresholds = config.quality
    if args.reference:
        try:
            reference = analyze_stars(args.reference, options)
        except StarQCError as e:
            logger.error(f"Cannot analyze reference frame: {e}")
            return 1
        thresholds = thresholds_from_reference(reference, thresholds)
        logger.info(f"Thresholds from reference {args.reference}: FWHM<={thresholds.fwhm_max:.2f}px, "
                    f"stars>={thresholds.stars_min}, noise<={thresholds.noise_max:.3f}, "
                    f"tracking<={thresholds.tracking_max:.2f}")

    inputs = _iter_inputs(args.input, args.glob)
    if not inputs:
        logger.error("No input files matched")
        return 2

    threads = args.threads if args.threads is not None else config.processing.max_threads
    records = analyze_files(inputs, options=options, max_workers=threads)

    ok_any = False
    for path, record in records.items():
        if record["status"] != "success":
            logger.error(f"{path}: {record['status']} - {record.get('message')}")
            continue
        ok_any = True
        result = FrameAnalysisResult.from_dict(record)
        assessment = assess_frame(result, thresholds)
        record.update(assessment.to_dict())
        logger.info(f"{os.path.basename(path)}: {assessment.grade.value.upper()} "
                    f"score={assessment.score} stars={result.star_count} FWHM={result.fwhm:.2f}px "
                    f"elong p90/max={result.star_elongation_p90:.2f}/{result.star_elongation_max:.2f} "
                    f"noise={result.background_noise:.3f} tracking={result.tracking_error:.2f} "
                    f"- {record['reason']}")

    if args.json_path:
        with open(args.json_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, sort_keys=True)
        logger.info(f"Results for {len(records)} files -> {args.json_path}")

    return 0 if ok_any else 1


if __name__ == "__main__":
    raise SystemExit(main())
