from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def timestamped_name(original_name: str, now: Optional[datetime] = None) -> str:
    """`<yyyyMMddHHmmssSSS>_<original_name>`, millisecond resolution."""
    now = now or datetime.now()
    return f"{now:%Y%m%d%H%M%S}{now.microsecond // 1000:03d}_{original_name}"


@dataclass
class StoragePaths:
    input_dir: Path
    output_dir: Path
    processed_dir: Path
    error_dir: Path
    temp_extension: str = ".tmp"
    final_extension: str = ".txt"

    def source_path(self, filename: str) -> Path:
        return self.input_dir / filename

    def temp_output_path(self, name: str) -> Path:
        return self.output_dir / f"{name}{self.temp_extension}"

    def final_output_path(self, name: str) -> Path:
        return self.output_dir / f"{Path(name).stem}{self.final_extension}"

    def processed_path(self, name: str) -> Path:
        return self.processed_dir / name

    def error_path(self, name: str) -> Path:
        return self.error_dir / name


@dataclass
class ProcessingFiles:
    """Files touched while one document is being processed."""

    name: str
    source: Path
    temp_output: Path
    final_output: Path
    finalized: bool = False


class FileLifecycleManager:
    """
    Moves source files between the input, processed and error directories and
    manages the temporary output written while a document is split.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def ensure_dirs(self) -> None:
        for directory in (
            self.paths.input_dir,
            self.paths.output_dir,
            self.paths.processed_dir,
            self.paths.error_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    def locate_source(self, filename: str) -> Path:
        path = self.paths.source_path(filename)
        # only plain names directly inside the input directory
        if Path(filename).name != filename or path.resolve().parent != self.paths.input_dir.resolve():
            raise ValueError(f"File name {filename!r} is outside the input directory")
        if not path.is_file():
            raise FileNotFoundError(f"Source file not found at {path}")
        return path

    def begin(self, source: Path, now: Optional[datetime] = None) -> ProcessingFiles:
        name = timestamped_name(source.name, now)
        return ProcessingFiles(
            name=name,
            source=source,
            temp_output=self.paths.temp_output_path(name),
            final_output=self.paths.final_output_path(name),
        )

    def complete(self, files: ProcessingFiles) -> None:
        target = self.paths.processed_path(files.name)
        shutil.move(str(files.source), str(target))
        files.source = target
        if files.temp_output.exists():
            files.temp_output.replace(files.final_output)
            files.finalized = True
        logger.info("File processed successfully: %s", files.name)

    def fail(self, files: ProcessingFiles) -> Optional[Path]:
        """
        Remove partial output and move the source into the error directory.
        Cleanup problems are logged; the original failure is what matters to
        the caller. Returns the new source location, or None if it could not
        be moved.
        """
        self._discard(files.temp_output)
        if files.finalized:
            self._discard(files.final_output)

        if not files.source.exists():
            logger.error("Source file %s missing, cannot move it to the error directory", files.source)
            return None
        target = self.paths.error_path(files.name)
        try:
            shutil.move(str(files.source), str(target))
        except OSError:
            logger.exception("Error moving file to error directory: %s", files.name)
            return None
        files.source = target
        return target

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Error deleting output file: %s", path, exc_info=True)
