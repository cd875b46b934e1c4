"""Domain exceptions for the codec, catalog and print pipeline."""


class InvalidCategory(ValueError):
    """Category has no barcode mapping."""


class SequenceOutOfRange(ValueError):
    """Sequence is not inside 1..capacity for its category."""


class TemplateGeometryError(ValueError):
    """A paper template does not tile its page."""


class UnknownTemplate(ValueError):
    """Template name is not in the catalog."""


class EmptyRange(ValueError):
    """No tickets exist in the requested range."""


class JobNotFound(LookupError):
    pass


class JobStateError(RuntimeError):
    """Job cannot be run from its current status."""


class JobCancelled(Exception):
    """Raised inside a run when an operator cancelled the job."""


class RenderingFailure(Exception):
    """The image renderer failed for one payload."""


class PersistenceConflict(Exception):
    """A uniqueness constraint rejected a write (barcode or identifier)."""


class InvalidBackground(ValueError):
    """A custom background image name is unsafe, unsupported or missing."""
