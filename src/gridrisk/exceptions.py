"""
Error Taxonomy

Exceptions raised across the data access, reporting and notification layers.
"""


class GridRiskError(Exception):
    """Base class for all application errors."""


class DataFetchError(GridRiskError):
    """Base data could not be fetched. Fatal to the current report."""


class InvalidFilterError(GridRiskError):
    """A filter specification was rejected before query construction."""


class TextGenerationError(GridRiskError):
    """The external text-generation endpoint failed or is not configured."""


class AssemblyError(GridRiskError):
    """The aggregated summary could not be encoded. Fatal to the current report."""


class NotFoundError(GridRiskError):
    """A requested record does not exist or is not visible to the caller."""


class ReportNotFoundError(NotFoundError):
    """No report with the given id is visible to the caller."""


class StoredFileNotFoundError(NotFoundError):
    """No stored file with the given id or path."""


class InvalidReportStateError(GridRiskError):
    """A status write was attempted on a report that already left 'generating'."""


class NotificationDeliveryError(GridRiskError):
    """An email or other out-of-band delivery failed."""


class StorageError(GridRiskError):
    """A blob path was rejected or the blob store could not be written."""


class PermissionDeniedError(GridRiskError):
    """The caller's role does not allow the operation."""
