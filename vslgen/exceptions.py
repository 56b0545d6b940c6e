"""Custom exceptions for the vslgen backend.

Every error carries a machine-readable code and an HTTP status so the API
layer can render it without knowing the concrete type.
"""


class VslError(Exception):
    """Base exception for all vslgen application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialize to the API error payload."""
        return {"code": self.code, "message": self.message}


# =============================================================================
# Processing Errors
# =============================================================================


class CaptureError(VslError):
    """Headless browser could not load or screenshot a page."""

    code = "CAPTURE_FAILED"
    status_code = 502
    message = "Failed to capture website"


class CompositionError(VslError):
    """Media engine exited with a non-zero status."""

    code = "COMPOSITION_FAILED"
    status_code = 500
    message = "Video composition failed"

    def __init__(self, message: str | None = None, *, command: list[str] | None = None, stderr: str = ""):
        self.command = command or []
        self.stderr = stderr
        super().__init__(message)


class ProbeError(VslError):
    """Container metadata could not be read."""

    code = "PROBE_FAILED"
    status_code = 500
    message = "Failed to read media metadata"


class PersistenceError(VslError):
    """Job-state store could not be read or written."""

    code = "PERSISTENCE_FAILED"
    status_code = 503
    message = "Job state store unavailable"


# =============================================================================
# Request Errors
# =============================================================================


class CampaignNotFoundError(VslError):
    """Campaign not found."""

    code = "CAMPAIGN_NOT_FOUND"
    status_code = 404
    message = "Campaign not found"

    def __init__(self, campaign_id: str | None = None):
        message = f"Campaign not found: {campaign_id}" if campaign_id else self.message
        super().__init__(message)


class MissingIntroVideoError(VslError):
    """Campaign has no intro video to overlay."""

    code = "MISSING_INTRO_VIDEO"
    status_code = 400
    message = "No intro video uploaded for this campaign"


class NoLeadsError(VslError):
    """No leads matched the generation request."""

    code = "NO_LEADS"
    status_code = 400
    message = "No leads found for this campaign"
