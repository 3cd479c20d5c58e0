"""
imgrestore - Main Entry Point
=============================
Command-line batch restoration of images.

Usage:
    python main.py de-mosaic photo.jpg --strength 3 --passes 4
    python main.py de-watermark photo.jpg --mask '[{"x":50,"y":50,"width":20,"height":20}]'
    python main.py restore old_*.jpg --mode detail -o restored/

Architecture:
    - Model: imgrestore/core/ (pure pixel pipelines)
    - Workers: imgrestore/workers/ (thread pool + QThread batch worker)
    - Controller: This file (signal/slot connections)
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QCoreApplication

from imgrestore import __app_name__, __version__
from imgrestore.core.service import OPERATIONS, ServiceConfig
from imgrestore.workers import BatchConfig, ImageResult, PoolConfig, RestoreWorker

logger = logging.getLogger("imgrestore")

# CLI option -> form field
FORM_FIELDS = ("strength", "scale", "passes", "sharpness", "mode", "feather", "mask")


class BatchController:
    """
    Controller class that connects worker signals to console output.

    Responsibilities:
    - Create and manage the worker thread
    - Report progress and per-image results
    - Quit the event loop when the batch is done
    """

    def __init__(self, app: QCoreApplication, config: BatchConfig):
        self.app = app
        self.config = config
        self.results: List[ImageResult] = []
        self._worker: Optional[RestoreWorker] = None

    def start(self):
        self._worker = RestoreWorker(self.config)
        self._worker.progress.connect(self._on_progress)
        self._worker.image_completed.connect(self._on_image_completed)
        self._worker.finished_all.connect(self._on_finished)
        self._worker.error.connect(self._on_error)
        self._worker.start()

    def _on_progress(self, current: int, total: int, filename: str):
        logger.info("[%d/%d] %s", current, total, filename)

    def _on_image_completed(self, result: ImageResult):
        if result.success:
            logger.info("  -> %s %s", result.output_path, result.params)
        else:
            logger.error("  !! %s: %s", result.source_path.name, result.error_message)

    def _on_error(self, message: str):
        logger.error(message)

    def _on_finished(self, results: list):
        self.results = results
        if self._worker is not None:
            self._worker.wait()
            self._worker.deleteLater()
            self._worker = None
        self.app.quit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="De-mosaic, de-watermark or auto-restore images.",
    )
    parser.add_argument("operation", choices=OPERATIONS)
    parser.add_argument("images", nargs="+", type=Path)
    parser.add_argument("-o", "--output-dir", type=Path, default=Path.cwd() / "output")
    parser.add_argument("--strength")
    parser.add_argument("--scale")
    parser.add_argument("--passes")
    parser.add_argument("--sharpness")
    parser.add_argument("--mode")
    parser.add_argument("--feather")
    parser.add_argument("--mask", help="JSON array of {x, y, width, height}")
    parser.add_argument("--quality", type=int, default=ServiceConfig.jpeg_quality)
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--queue", type=int, default=16)
    parser.add_argument("--timeout", type=float, default=120.0)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> BatchConfig:
    form = {
        name: getattr(args, name)
        for name in FORM_FIELDS
        if getattr(args, name) is not None
    }
    return BatchConfig(
        image_paths=list(args.images),
        output_dir=args.output_dir,
        operation=args.operation,
        form=form,
        service=ServiceConfig(jpeg_quality=args.quality),
        pool=PoolConfig(
            max_workers=args.workers,
            max_queue=args.queue,
            policy="wait",
            timeout=args.timeout if args.timeout > 0 else None,
        ),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)-8s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Create application (event loop for worker signals)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName(__app_name__)
    app.setApplicationVersion(__version__)

    controller = BatchController(app, config_from_args(args))
    controller.start()

    # Run event loop
    app.exec()

    failed = [r for r in controller.results if not r.success]
    if not controller.results or failed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
