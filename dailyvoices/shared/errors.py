"""Error taxonomy for the safety core.

Most of these are recovered where they occur and never reach a user:
an unknown language falls back to the default lexicon, an unknown region
to the default crisis resource, a detector fault to a positive match.
"""


class SafetyError(Exception):
    """Base exception for the safety core."""
    pass


class UnsupportedLanguageError(SafetyError):
    """Language tag has no lexicon."""
    pass


class UnsupportedRegionError(SafetyError):
    """Region code has no crisis resource."""
    pass


class DetectionFailure(SafetyError):
    """Unexpected fault while scanning text."""
    pass


class RepositoryError(Exception):
    """Base exception for storage backends."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in storage."""
    pass


class AuditWriteError(RepositoryError):
    """Writing or updating a flagged-entry record failed."""
    pass


class FlagNotFoundError(NotFoundError):
    """No flagged-entry record with the given id."""
    pass
