"""Exceptions raised by the habsdm pipeline."""


class HabsdmError(Exception):
    """Base class for pipeline errors."""


class DataSourceError(HabsdmError):
    """An upstream data source failed or returned nothing usable."""


class InsufficientCellsError(HabsdmError, ValueError):
    """Too few valid empty cells to draw the requested pseudo-absences."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot sample {requested} pseudo-absence points: only {available} "
            "valid cells are free of presence records."
        )


class CollinearityConvergenceError(HabsdmError):
    """Collinearity reduction did not settle within the iteration limit."""


class ArtifactError(HabsdmError):
    """A cached artifact is malformed or does not match the expected schema."""
