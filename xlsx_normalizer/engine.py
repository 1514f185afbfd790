"""
External document-conversion engine.

The pipeline only depends on the ExternalEngine protocol; LibreOfficeEngine
implements it by running ``soffice --headless --convert-to csv`` on a
one-sheet workbook so that formulas without cached values get evaluated.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from .errors import ExternalEngineFailed, ExternalEngineUnavailable

logger = logging.getLogger(__name__)

# comma separator, double-quote text delimiter, UTF-8, start at line 1
CSV_FILTER = "csv:Text - txt - csv (StarCalc):44,34,76,1"
PROBE_TIMEOUT = 10.0


class ExternalEngine(Protocol):
    def is_available(self) -> bool:
        ...

    def render_csv(self, workbook_bytes: bytes, timeout: float) -> Optional[str]:
        ...


class LibreOfficeEngine:
    def __init__(self, binary: str = "soffice") -> None:
        self.binary = binary

    def _executable(self) -> str:
        path = shutil.which(self.binary)
        if path is None:
            raise ExternalEngineUnavailable(f"{self.binary} not found on PATH")
        return path

    def is_available(self) -> bool:
        """Liveness probe: the binary exists and answers --version."""
        try:
            result = subprocess.run(
                [self._executable(), "--headless", "--version"],
                capture_output=True,
                timeout=PROBE_TIMEOUT,
            )
        except (ExternalEngineUnavailable, OSError, subprocess.TimeoutExpired) as exc:
            logger.info("external engine probe failed: %s", exc)
            return False
        return result.returncode == 0

    def render_csv(self, workbook_bytes: bytes, timeout: float) -> Optional[str]:
        """
        Convert a one-sheet XLSX to CSV text.

        Returns None when the engine produced no output file. Raises
        ExternalEngineFailed on a non-zero exit or timeout. The scratch
        directory is removed on every path.
        """
        executable = self._executable()
        try:
            return self._convert(executable, workbook_bytes, timeout)
        except OSError as exc:
            raise ExternalEngineFailed(f"external engine scratch files failed: {exc}") from exc

    def _convert(self, executable: str, workbook_bytes: bytes, timeout: float) -> Optional[str]:
        with tempfile.TemporaryDirectory(prefix="xlsx_normalizer_") as tmp:
            workdir = Path(tmp)
            source = workdir / "sheet.xlsx"
            source.write_bytes(workbook_bytes)
            cmd = [
                executable,
                f"-env:UserInstallation={(workdir / 'profile').as_uri()}",
                "--headless",
                "--convert-to",
                CSV_FILTER,
                "--outdir",
                str(workdir),
                str(source),
            ]
            logger.debug("running external engine: %s", " ".join(cmd))
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
            except subprocess.TimeoutExpired as exc:
                raise ExternalEngineFailed(f"external engine timed out after {timeout}s") from exc
            except OSError as exc:
                raise ExternalEngineFailed(f"external engine could not start: {exc}") from exc

            if result.returncode != 0:
                raise ExternalEngineFailed(
                    f"external engine exited with {result.returncode}",
                    {"stderr": (result.stderr or "").strip()[-2000:]},
                )

            output = workdir / "sheet.csv"
            if not output.exists():
                return None
            return output.read_text(encoding="utf-8-sig", errors="replace")
