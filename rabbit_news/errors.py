"""
Pipeline exception hierarchy.

Source-level failures never surface here: they are caught per source and
degrade to an empty result. Only conditions the caller must distinguish
from "ran fine, found nothing" are raised.
"""


class PipelineError(RuntimeError):
    """Base class for pipeline-wide failures."""


class NoDataAvailableError(PipelineError):
    """Every fetch source failed and the holdings search failed too."""

    def __init__(self, failed_sources: int = 0, holdings_failed: bool = True):
        self.failed_sources = failed_sources
        self.holdings_failed = holdings_failed
        super().__init__(
            f"No data available: {failed_sources} sources failed"
            f"{' and holdings search failed' if holdings_failed else ''}"
        )


class ThemeGroupingError(PipelineError):
    """Language-model theme grouping produced nothing usable."""
