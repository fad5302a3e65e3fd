"""Exception types surfaced by the memory store and consolidation engine."""


class BrainError(Exception):
    """Base class for expected, user-reportable failures."""


class StoreUnavailable(BrainError):
    """The backing database could not be opened or reached."""


class ConfigurationError(BrainError):
    """A required collaborator (e.g. the summarizer) is not configured."""


class MalformedCollaboratorResponse(BrainError):
    """The summarizer returned something other than the expected JSON object.

    Raised by the strict parser only; the consolidation engine repairs the
    response instead of letting this escape.
    """


class ConsolidationInProgress(BrainError):
    """A consolidation cycle is already running in this process."""


class ConsolidationError(BrainError):
    """A consolidation cycle aborted before consuming its messages."""
