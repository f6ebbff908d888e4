"""ffmpeg wrapper: any supported input → fixed-bitrate MP3."""
from pathlib import Path

import structlog

from resonance.core.errors import TranscodeError
from resonance.core.process import ProcessTimeoutError, Runner

log = structlog.get_logger()


class Transcoder:

    def __init__(self, runner: Runner, ffmpeg_bin: str = "ffmpeg", timeout: float = 300.0):
        self.runner = runner
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout = timeout

    def command(self, input_path: Path, output_path: Path, bitrate_kbps: int) -> list[str]:
        return [
            self.ffmpeg_bin,
            "-hide_banner", "-nostdin",
            "-i", str(input_path),
            "-codec:a", "libmp3lame",
            "-b:a", f"{bitrate_kbps}k",
            "-y",  # overwrite output
            str(output_path),
        ]

    async def transcode(self, input_path: Path, output_path: Path, bitrate_kbps: int) -> None:
        """Raises TranscodeError unless ffmpeg exits 0. Cancellation propagates."""
        args = self.command(input_path, output_path, bitrate_kbps)
        try:
            result = await self.runner.run(args, timeout=self.timeout)
        except ProcessTimeoutError as e:
            log.error("transcode_failed", reason="timeout", timeout=e.timeout)
            raise TranscodeError("Audio compression timed out") from e
        except OSError as e:
            log.error("transcode_failed", reason="spawn", error=str(e))
            raise TranscodeError(f"Could not start {self.ffmpeg_bin}") from e

        if result.exit_code != 0:
            log.error(
                "transcode_failed",
                reason="exit_code",
                exit_code=result.exit_code,
                stderr=result.stderr[-500:],
            )
            raise TranscodeError("Audio compression failed")

        log.info("transcode_complete", output=output_path.name, bitrate_kbps=bitrate_kbps)
