"""
Restore Worker - Async Batch Restoration
========================================
QThread worker that runs one restore operation over a list of images.

Workflow:
1. Read each source file and submit it to a RestorePool, keeping at most
   max_workers + max_queue images in flight
2. Collect results in input order, emitting progress signals
3. Write each output atomically (temp file + rename); a failed image
   leaves no partial file behind
4. Emit finished signal with results

Naming Convention:
- de-mosaic: filename_demosaic.jpg
- de-watermark: filename_dewatermark.jpg
- restore: filename_restore.jpg
"""

import os
import tempfile
import traceback
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Tuple

from PyQt6.QtCore import QThread, pyqtSignal

from imgrestore.core.errors import PoolSaturated, RestoreError
from imgrestore.core.service import OPERATIONS, RestoreService, ServiceConfig, envelope
from imgrestore.workers.pool import PoolConfig, RestorePool, RestoreTask

# (source path, submitted task or None, read/admission error)
PendingImage = Tuple[Path, Optional[RestoreTask], Optional[str]]


@dataclass
class BatchConfig:
    """Complete configuration for a batch run."""
    image_paths: List[Path] = field(default_factory=list)
    output_dir: Path = field(default_factory=lambda: Path.cwd() / "output")
    operation: str = "de-mosaic"
    # Form fields exactly as a caller would send them (strings)
    form: Dict[str, Any] = field(default_factory=dict)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    pool: PoolConfig = field(default_factory=lambda: PoolConfig(policy="wait"))


@dataclass
class ImageResult:
    """Result of restoring a single image."""
    source_path: Path
    output_path: Optional[Path] = None
    width: int = 0
    height: int = 0
    params: Dict[str, Any] = field(default_factory=dict)
    success: bool = False
    error_message: str = ""
    response: Dict[str, Any] = field(default_factory=dict)


def output_filename(source_path: Path, operation: str) -> str:
    """Output name for `source_path`, e.g. photo_demosaic.jpg."""
    return f"{source_path.stem}_{operation.replace('-', '')}.jpg"


def write_atomic(path: Path, data: bytes):
    """Write `data` to `path` via a temporary file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_name, path)
    except BaseException:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise


class RestoreWorker(QThread):
    """
    Worker thread for batch restoration.

    Signals:
        progress(int, int, str): (current, total, current_file_name)
        image_completed(ImageResult): Emitted when each image is processed
        finished_all(list[ImageResult]): Emitted when all images are done
        error(str): Emitted on critical errors
    """

    # Signals
    progress = pyqtSignal(int, int, str)  # current, total, filename
    image_completed = pyqtSignal(object)  # ImageResult
    finished_all = pyqtSignal(list)  # List[ImageResult]
    error = pyqtSignal(str)  # Error message

    def __init__(self, config: BatchConfig, service: Optional[RestoreService] = None,
                 parent=None):
        """
        Initialize the restore worker.

        Args:
            config: BatchConfig with all settings.
            service: Optional pre-built service (tests inject a seeded one).
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self.config = config
        self._service = service or RestoreService(config.service)
        self._is_cancelled = False
        self._tasks: List[PendingImage] = []

    def cancel(self):
        """Request cancellation of the worker."""
        self._is_cancelled = True
        for _, task, _ in self._tasks:
            if task is not None:
                task.cancel()

    def _submit(self, pool: RestorePool, image_path: Path) -> PendingImage:
        try:
            data = Path(image_path).read_bytes()
            task = pool.submit(
                self._service.process, self.config.operation, data, self.config.form
            )
        except OSError as e:
            pending = (image_path, None, f"Cannot read image: {e}")
        except PoolSaturated as e:
            pending = (image_path, None, str(e))
        else:
            pending = (image_path, task, None)
        self._tasks.append(pending)
        return pending

    def _collect(self, image_path: Path, task: Optional[RestoreTask],
                 read_error: Optional[str]) -> ImageResult:
        result = ImageResult(source_path=image_path)
        if task is None:
            result.error_message = read_error or "Not processed"
            result.response = envelope(error=RestoreError(result.error_message))
            return result

        try:
            restored = task.result(timeout=self.config.pool.timeout)
            output_path = self.config.output_dir / output_filename(
                image_path, self.config.operation
            )
            write_atomic(output_path, restored.data)

            result.output_path = output_path
            result.width = restored.width
            result.height = restored.height
            result.params = dict(restored.params)
            result.response = envelope(restored, url=str(output_path))
            result.success = True

        except RestoreError as e:
            result.success = False
            result.error_message = str(e)
            result.response = envelope(error=e)

        except Exception as e:
            result.success = False
            result.error_message = str(e)
            result.response = envelope(error=e)
            traceback.print_exc()

        return result

    def _finish(self, pending: PendingImage, results: List[ImageResult], total: int):
        image_path, task, read_error = pending

        # Emit progress
        self.progress.emit(len(results) + 1, total, Path(image_path).name)

        result = self._collect(image_path, task, read_error)
        results.append(result)

        # Emit individual result
        self.image_completed.emit(result)

    def run(self):
        """
        Main worker execution.

        Processes all images in the config and emits progress signals.
        At most max_workers + max_queue images are in flight; the oldest
        one is collected before the next is submitted.
        """
        results: List[ImageResult] = []
        total = len(self.config.image_paths)

        if total == 0:
            self.error.emit("No images to process")
            self.finished_all.emit(results)
            return

        if self.config.operation not in OPERATIONS:
            self.error.emit(f"Unknown operation: {self.config.operation}")
            self.finished_all.emit(results)
            return

        pool = RestorePool(self.config.pool)
        window = self.config.pool.max_workers + self.config.pool.max_queue
        in_flight: Deque[PendingImage] = deque()
        try:
            for image_path in self.config.image_paths:
                if self._is_cancelled:
                    break
                while len(in_flight) >= window:
                    self._finish(in_flight.popleft(), results, total)
                in_flight.append(self._submit(pool, image_path))

            while in_flight and not self._is_cancelled:
                self._finish(in_flight.popleft(), results, total)

        except Exception as e:
            self.error.emit(f"Critical error: {str(e)}")
            traceback.print_exc()

        finally:
            pool.shutdown(wait=True, cancel_pending=self._is_cancelled)

        # Emit final results
        self.finished_all.emit(results)
