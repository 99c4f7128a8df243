"""Repository implementations for run persistence."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, cast

from ..domain import ModelFingerprint, TestResult
from ..exceptions import ArtifactSaveError, RepositoryError
from ..services import IFileSystemService, IResultStore, ITimeService

RAW_RESULTS_FILENAME = "raw-results.json"
FINGERPRINTS_FILENAME = "fingerprints.json"

_RUN_DIR_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T")


class ResultStore(IResultStore):
    """Writes each run to its own timestamped directory.

    Both documents are created exclusively; an existing file is never
    overwritten.
    """

    def __init__(
        self,
        outdir: Path,
        fs_service: IFileSystemService,
        time_service: ITimeService,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the result store.

        Args:
            outdir: Base directory holding one subdirectory per run
            fs_service: File system service for JSON operations
            time_service: Source of the run timestamp
        """
        self._outdir = outdir
        self._fs_service = fs_service
        self._time_service = time_service
        self._logger = logger or logging.getLogger(__name__)

    def _run_directory(self) -> Path:
        stamp = re.sub(r"[:.]", "-", self._time_service.now_iso())
        return self._outdir / stamp

    def save(self, results: Sequence[TestResult], fingerprints: Sequence[ModelFingerprint]) -> Path:
        """Write ``raw-results.json`` and ``fingerprints.json`` and return the run directory.

        A failed save removes whatever it already created, so a run directory
        holds either both documents or neither.
        """
        run_dir = self._run_directory()
        documents = [
            (run_dir / RAW_RESULTS_FILENAME, [result.to_dict() for result in results]),
            (run_dir / FINGERPRINTS_FILENAME, [fingerprint.to_dict() for fingerprint in fingerprints]),
        ]
        created: List[Path] = []
        for path, payload in documents:
            try:
                self._fs_service.write_json(path, payload, exclusive=True)
            except FileExistsError as exc:
                self._discard(run_dir, created)
                raise ArtifactSaveError("Result file already exists", file_path=str(path)) from exc
            except OSError as exc:
                # the exclusive open may have created a partial file
                self._discard(run_dir, created + [path])
                raise ArtifactSaveError(f"Unable to write results: {exc}", file_path=str(path)) from exc
            created.append(path)
        self._logger.debug("Saved %d results and %d fingerprints to %s", len(results), len(fingerprints), run_dir)
        return run_dir

    def _discard(self, run_dir: Path, paths: Sequence[Path]) -> None:
        try:
            for path in paths:
                path.unlink(missing_ok=True)
            if run_dir.is_dir() and not any(run_dir.iterdir()):
                run_dir.rmdir()
        except OSError as exc:
            self._logger.warning("Could not clean up partial run in %s: %s", run_dir, exc)

    def load_results(self, run_dir: Path) -> List[TestResult]:
        """Read ``raw-results.json`` from a run directory."""
        path = run_dir / RAW_RESULTS_FILENAME
        if not path.exists():
            raise RepositoryError(f"{RAW_RESULTS_FILENAME} not found", context={"path": str(path)})
        try:
            data = self._fs_service.read_json(path)
        except ValueError as exc:
            raise RepositoryError(f"{RAW_RESULTS_FILENAME} is not valid JSON: {exc}", context={"path": str(path)}) from exc
        if not isinstance(data, list):
            raise RepositoryError("Raw results must be a JSON array", context={"path": str(path)})
        try:
            return [
                TestResult.from_dict(cast(Dict[str, Any], item)) for item in cast(List[Any], data) if isinstance(item, dict)
            ]
        except (TypeError, ValueError) as exc:
            raise RepositoryError(f"Malformed result record: {exc}", context={"path": str(path)}) from exc

    def find_latest_run(self) -> Optional[Path]:
        """Return the most recent run directory under the output directory."""
        if not self._outdir.is_dir():
            return None
        runs = sorted(
            (path for path in self._outdir.iterdir() if path.is_dir() and _RUN_DIR_RE.match(path.name)),
            key=lambda path: path.name,
            reverse=True,
        )
        return runs[0] if runs else None


__all__ = ["ResultStore", "RAW_RESULTS_FILENAME", "FINGERPRINTS_FILENAME"]
