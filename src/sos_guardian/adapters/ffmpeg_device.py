"""Recording devices backed by an ffmpeg subprocess."""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

from sos_guardian.domain.evidence import EvidenceKind
from sos_guardian.services.recorders import DeviceProvider

_logger = logging.getLogger(__name__)

_CODEC_ARGS = {
    EvidenceKind.AUDIO: ["-c:a", "aac", "-b:a", "128k", "-ar", "44100"],
    EvidenceKind.VIDEO: ["-c:v", "libx264", "-preset", "veryfast", "-pix_fmt", "yuv420p"],
}


@dataclass
class FfmpegRecordingDevice:
    """A single ffmpeg capture writing to ``output_path``."""

    command: list[str]
    output_path: Path
    _process: asyncio.subprocess.Process | None = field(init=False, default=None)

    async def start(self) -> None:
        """Spawn ffmpeg; it records until told to quit."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

    async def stop(self) -> str | None:
        """Ask ffmpeg to quit, wait for it to flush, and return the file path."""
        process = self._process
        if process is None:
            return None
        self._process = None
        # "q" on stdin makes ffmpeg finish the container cleanly
        _, stderr = await process.communicate(b"q")
        if self.output_path.exists() and self.output_path.stat().st_size > 0:
            return str(self.output_path)
        message = stderr.decode(errors="replace").strip().splitlines()
        raise RuntimeError(
            f"ffmpeg exited with {process.returncode}: "
            f"{message[-1] if message else 'no output written'}"
        )


@dataclass
class FfmpegDeviceProvider(DeviceProvider):
    """Hands out ffmpeg captures for one input (microphone or camera)."""

    kind: EvidenceKind
    input_format: str
    input_name: str
    output_dir: Path
    binary: str = "ffmpeg"

    async def acquire(self) -> FfmpegRecordingDevice | None:
        """Return a device, or None when ffmpeg or the input is unavailable."""
        if shutil.which(self.binary) is None:
            _logger.warning(
                "%s capture unavailable: %s not found", self.kind, self.binary
            )
            return None
        output_path = (
            self.output_dir / f"{self.kind}_{int(time.time() * 1000)}.{self.kind.extension}"
        )
        command = [
            self.binary,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-f",
            self.input_format,
            "-i",
            self.input_name,
            *_CODEC_ARGS[self.kind],
            str(output_path),
        ]
        return FfmpegRecordingDevice(command=command, output_path=output_path)
