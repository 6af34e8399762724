from __future__ import annotations

from pathlib import Path
import subprocess
from typing import Sequence


class ExifToolError(RuntimeError):
    pass


class ExifTool:
    """Thin subprocess wrapper around the ``exiftool`` executable.

    Every call spawns a new process. Failures to spawn, a non-zero exit status
    and empty output all surface as :class:`ExifToolError`.
    """

    def __init__(self, executable: str = "exiftool") -> None:
        self.executable = executable

    def _run(self, args: Sequence[str], allow_partial: bool = False) -> bytes:
        cmd = [self.executable, *args]
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=False)
        except OSError as exc:
            raise ExifToolError(f"failure spawning {self.executable}: {exc}") from exc

        # exiftool exits with 1 when some of several files could not be read but
        # still prints the records of the others.
        if proc.returncode != 0 and not (allow_partial and proc.stdout):
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise ExifToolError(f"{self.executable} exited with {proc.returncode}: {stderr}")
        if not proc.stdout:
            raise ExifToolError(f"{self.executable} produced no output")
        return proc.stdout

    def read(self, paths: Sequence[Path | str]) -> str:
        """Human-readable tag dump for ``paths``, one ``========`` block per file."""
        out = self._run([str(p) for p in paths], allow_partial=True)
        return out.decode("utf-8", errors="replace")

    def icc_profile(self, path: Path | str) -> bytes:
        return self._run(["-icc_profile", "-b", str(path)])

    def preview_image(self, path: Path | str) -> bytes:
        return self._run(["-b", "-PreviewImage", str(path)])
