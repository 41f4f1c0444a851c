"""Error taxonomy for the grading-session pipeline."""

from typing import List, Optional


class GradingPipelineError(Exception):
    """Base error. Carries the HTTP status the trigger route responds with."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigurationError(GradingPipelineError):
    pass


class MissingFilesError(GradingPipelineError):
    status_code = 400

    def __init__(self, missing: List[str]):
        super().__init__(f"Missing required files: {', '.join(missing)}")
        self.missing = missing


class InvalidFileError(GradingPipelineError):
    status_code = 400


class SessionNotFound(GradingPipelineError):
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__("Session not found")
        self.session_id = session_id


class SessionBusy(GradingPipelineError):
    status_code = 409


class UploadFailed(GradingPipelineError):
    status_code = 502


class DownloadFailed(GradingPipelineError):
    status_code = 502


class ExtractionFailed(GradingPipelineError):
    status_code = 502


class GradingFailed(GradingPipelineError):
    status_code = 502


class PersistenceFailed(GradingPipelineError):
    status_code = 500


class ExternalTimeout(GradingPipelineError):
    status_code = 504


def upstream_code(error) -> str:
    """Numeric status of a google.api_core error, or 'unknown'."""
    code = getattr(error, "code", None)
    return str(int(code)) if code is not None else "unknown"
