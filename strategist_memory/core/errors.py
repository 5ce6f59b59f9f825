"""Error taxonomy for the document memory pipeline.

Every failure a route can surface is a ``MemoryPipelineError`` carrying the
HTTP status and the client-facing message. Routes translate them into
``HTTPException``; chained stages log them and stop advancing.
"""


class MemoryPipelineError(Exception):
    """Base class for all pipeline failures."""

    status_code = 500
    default_message = "Unexpected error in the memory pipeline."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(MemoryPipelineError):
    """Missing or malformed required fields."""

    status_code = 400
    default_message = "Invalid request."


class DocumentNotPublished(InvalidRequest):
    """Memory sync requested for a document that is not published."""

    status_code = 409
    default_message = "Document must be published before syncing memory."


class StaleStatusEvent(MemoryPipelineError):
    """Status event whose status differs from the stored document status."""

    status_code = 409
    default_message = "Document status does not match the reported status."


class NotFound(MemoryPipelineError):
    """Document, project or step is missing or not owned by the caller."""

    status_code = 404
    default_message = "Not found."


class FeatureDisabled(MemoryPipelineError):
    """The account has opted out of AI features."""

    status_code = 403
    default_message = "AI features are disabled for this account."


class NoApiKeyConfigured(MemoryPipelineError):
    """Neither a user key nor a default key is available."""

    status_code = 400
    default_message = "OpenAI API key not configured. Add a key in AI Settings."


class MalformedModelResponse(MemoryPipelineError):
    """The chat model failed, timed out, or returned unusable structured output."""

    status_code = 502
    default_message = "Summary response was malformed."


class EmbeddingFailed(MemoryPipelineError):
    """The embedding service failed or returned no usable vector."""

    status_code = 502
    default_message = "Failed to generate embedding."


class StoreWriteFailed(MemoryPipelineError):
    """A Supabase write (insert, update, upsert, delete) failed."""

    status_code = 500
    default_message = "Failed to write to the memory store."
