"""Domain-specific exceptions for ozone-core.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from OzoneCoreError for easy catching.
"""


class OzoneCoreError(Exception):
    """Base exception for all ozone-core errors.

    Users can catch this exception to handle any error raised by the
    forecasting or spatial stages.
    """

    pass


class ConfigError(OzoneCoreError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - Invalid configuration values are provided
    - The readings table is empty (nothing to model)
    - A requested model family or kriging variant does not exist
    """

    pass


class DataQualityError(OzoneCoreError):
    """Raised when data quality checks fail.

    This exception is raised when:
    - Required columns are missing from input data
    - Every station (or every cross-validation fold) of a stage failed
    """

    pass


class DataGapError(DataQualityError):
    """Raised when a station's monthly series has missing months.

    The modeling step assumes a contiguous monthly index, so a station with
    gaps is skipped and recorded as missing rather than aborting the batch.
    """

    def __init__(self, station_id: object, missing: list) -> None:
        self.station_id = station_id
        self.missing = list(missing)
        preview = ", ".join(str(m) for m in self.missing[:3])
        if len(self.missing) > 3:
            preview += ", ..."
        super().__init__(
            f"Station {station_id}: {len(self.missing)} missing month(s) ({preview})"
        )


class InsufficientDataError(DataQualityError):
    """Raised when a series is too short or degenerate for a model family.

    Examples are series shorter than the minimum number of observations,
    constant series, and non-positive values under a log or Box-Cox transform.
    """

    pass


class VariogramFitWarning(UserWarning):
    """Warning emitted when the theoretical variogram fit did not converge.

    The estimator falls back to heuristic parameters and continues.
    """

    pass
