"""
Batch star analysis over many FITS files.

Files are analyzed in parallel threads. Each analysis owns its own file
handle and buffers, so the results do not depend on scheduling order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..types import AnalysisResultDict, FilePath, ProgressCallback
from .analyzer import AnalysisOptions, StarFieldAnalyzer

logger = logging.getLogger(__name__)

FITS_EXTENSIONS = (".fits", ".fit", ".fts")


def find_fits_files(folder: FilePath) -> List[Path]:
    """Recursively discover FITS files in a folder, sorted by path."""
    root = Path(folder).expanduser()
    if not root.is_dir():
        raise FileNotFoundError(f"Folder does not exist: {root}")
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in FITS_EXTENSIONS)


def analyze_files(paths: Sequence[FilePath], options: Optional[AnalysisOptions] = None,
                  max_workers: int = 4,
                  progress_callback: Optional[ProgressCallback] = None,
                  analyzer: Optional[StarFieldAnalyzer] = None) -> Dict[str, AnalysisResultDict]:
    """
    Analyze several files concurrently.

    Args:
        paths: FITS files to analyze
        options: Shared analysis options
        max_workers: Thread pool size
        progress_callback: Optional callable(completed, total, message) -> bool;
            returning False stops scheduling files that have not started
        analyzer: Analyzer to use (a default one when None)

    Returns:
        dict: path -> structured result record, in input order. Files skipped
        after cancellation get a "cancelled" record.
    """
    analyzer = analyzer or StarFieldAnalyzer()
    keys = [str(p) for p in paths]
    results: Dict[str, AnalysisResultDict] = {}
    if not keys:
        return results

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        future_to_path = {executor.submit(analyzer.analyze_image_quality, key, None, options): key
                          for key in keys}
        logger.debug(f"Submitted {len(future_to_path)} analysis tasks")

        completed = 0
        for future in as_completed(future_to_path):
            key = future_to_path[future]
            if future.cancelled():
                continue
            results[key] = future.result()
            completed += 1
            if progress_callback is not None:
                if progress_callback(completed, len(keys), f"Analyzed {Path(key).name}") is False:
                    logger.info("Batch analysis cancelled")
                    for pending in future_to_path:
                        pending.cancel()

    ordered = {}
    for key in keys:
        ordered[key] = results.get(key, {
            "status": "cancelled",
            "message": "Batch analysis cancelled",
            "error_code": "CANCELLED",
            "file_path": key,
        })
    succeeded = sum(1 for r in ordered.values() if r.get("status") == "success")
    logger.info(f"Batch analysis finished: {succeeded}/{len(keys)} files succeeded")
    return ordered
