"""
Typed failures surfaced by the ingestion pipeline and the catalog API.

Analysis problems are not represented here: a probe that fails leaves its
field empty and is only logged.
"""


class ResonanceError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ResonanceError):
    """Bad media type, oversized upload, malformed request."""
    status_code = 400


class TranscodeError(ResonanceError):
    """ffmpeg failed, timed out or could not be started."""
    status_code = 500


class StorageError(ResonanceError):
    """A disk write, rename or catalog commit failed."""
    status_code = 500


class NotFoundError(ResonanceError):
    status_code = 404
