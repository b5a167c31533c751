"""
Error types surfaced by the assistant.

Each error carries the HTTP status the web layer maps it to.
"""


class AssistantError(Exception):
    status_code = 500
    public_message = "Server error"


class ValidationError(AssistantError):
    """Missing or malformed request field. Not retried."""

    status_code = 400

    @property
    def public_message(self) -> str:
        return str(self) or "Invalid request."


class NotReadyError(AssistantError):
    """No knowledge snapshot has loaded yet. Caller should retry later."""

    status_code = 503
    public_message = "KB not loaded yet"


class SourceSyncError(AssistantError):
    """Fetching or parsing the knowledge base or the instructions failed.

    The previously loaded state keeps serving.
    """


class ProviderError(AssistantError):
    """Embedding or generation call failed. Never retried inline."""
