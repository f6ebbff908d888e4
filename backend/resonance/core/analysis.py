"""
Radio-mode analysis: energy, tempo and key.

Two independent probes, both best-effort:
  - energy:  ffmpeg volumedetect, mean volume rescaled from [-60 dB, 0 dB] to [0, 100]
  - bpm/key: embedded tags only (TBPM/BPM/bpm, TKEY/KEY/initialkey)

No signal-processing tempo or key detection is done; an untagged file simply
has no bpm/key. `analyze` never raises except on cancellation.
"""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import structlog
from mutagen import File as MutagenFile
from starlette.concurrency import run_in_threadpool

from resonance.core.metadata import first_text
from resonance.core.process import ProcessTimeoutError, Runner

log = structlog.get_logger()

MEAN_VOLUME_RE = re.compile(r"mean_volume:\s*(-?(?:inf|\d+(?:\.\d+)?))\s*dB")
LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")

SILENCE_DB = -60.0
TEMPO_TAGS = {"tbpm", "bpm", "tmpo"}
KEY_TAGS   = {"tkey", "key", "initialkey"}


@dataclass
class AnalysisResult:
    bpm: Optional[int] = None
    key: Optional[str] = None
    energy: Optional[int] = None


def energy_from_mean_volume(mean_db: float) -> int:
    """Linear map -60 dB → 0, 0 dB → 100, clamped. Digital silence reports -inf."""
    mean_db = max(SILENCE_DB, min(0.0, mean_db))
    return round((mean_db - SILENCE_DB) * (100 / -SILENCE_DB))


def parse_mean_volume(output: str) -> Optional[float]:
    match = MEAN_VOLUME_RE.search(output or "")
    return float(match.group(1)) if match else None


def parse_bpm(text: Optional[str]) -> Optional[int]:
    """Leading integer of a tempo tag, accepted only in (0, 300)."""
    if not text:
        return None
    match = LEADING_INT_RE.match(text)
    if not match:
        return None
    bpm = int(match.group(1))
    return bpm if 0 < bpm < 300 else None


def _tag_id(name) -> str:
    # "TXXX:initialkey", "----:com.apple.iTunes:initialkey" → "initialkey"
    return str(name).rsplit(":", 1)[-1].lower()


class AudioAnalyzer:

    def __init__(self, runner: Runner, ffmpeg_bin: str = "ffmpeg", timeout: float = 120.0):
        self.runner = runner
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout = timeout

    async def analyze(self, path: Path) -> AnalysisResult:
        result = AnalysisResult()
        result.energy = await self.probe_energy(path)
        result.bpm, result.key = await run_in_threadpool(self.read_tempo_and_key, path)
        log.info("analysis_complete", file=path.name, bpm=result.bpm, key=result.key, energy=result.energy)
        return result

    async def probe_energy(self, path: Path) -> Optional[int]:
        args = [
            self.ffmpeg_bin,
            "-hide_banner", "-nostats",
            "-i", str(path),
            "-af", "volumedetect",
            "-f", "null", "-",
        ]
        try:
            proc = await self.runner.run(args, timeout=self.timeout)
        except (OSError, ProcessTimeoutError) as e:
            log.warning("energy_probe_failed", file=path.name, error=str(e))
            return None

        if proc.exit_code != 0:
            log.warning("energy_probe_failed", file=path.name, exit_code=proc.exit_code)
            return None

        mean_db = parse_mean_volume(proc.stderr)
        if mean_db is None:
            log.warning("energy_probe_unparsed", file=path.name)
            return None
        return energy_from_mean_volume(mean_db)

    def read_tempo_and_key(self, path: Path) -> Tuple[Optional[int], Optional[str]]:
        try:
            audio = MutagenFile(str(path))
        except Exception as e:
            log.warning("tag_read_failed", file=path.name, error=str(e))
            return None, None
        if audio is None or audio.tags is None:
            return None, None

        bpm, key = None, None
        for name, value in audio.tags.items():
            tag = _tag_id(name)
            if bpm is None and tag in TEMPO_TAGS:
                bpm = parse_bpm(first_text(value))
            elif key is None and tag in KEY_TAGS:
                key = first_text(value)
        return bpm, key
