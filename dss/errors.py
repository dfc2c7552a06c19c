"""Error types raised by the decision support core."""


class DSSError(Exception):
    """Base class for decision support errors."""


class ValidationError(DSSError, ValueError):
    """Malformed or missing input, e.g. a non-positive window."""


class NotFoundError(DSSError, LookupError):
    """A requested insight or prediction does not exist for the user."""


class KnowledgeBaseError(DSSError):
    """The disease catalog could not be loaded or is inconsistent."""


class UnknownSymptomWarning(UserWarning):
    """A symptom name is not referenced by any disease in the catalog."""
