"""Exception taxonomy for the closing pipeline.

Routes translate these into HTTP status codes; workflow methods that
"attempt to advance" absorb ``CollaboratorError`` into state, while user
commands let everything propagate.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class NotFoundError(PipelineError):
    """A property, message, thread or document does not exist."""


class StateConflictError(PipelineError):
    """Operation invoked outside its required state, or a stale workflow write."""


class CollaboratorError(PipelineError):
    """An external collaborator (AI agent, mail provider) failed or timed out."""


class DeliveryError(CollaboratorError):
    """Outbound email delivery failed."""


class MalformedWorkflowStateError(PipelineError):
    """A persisted workflow document does not match the expected shape."""
