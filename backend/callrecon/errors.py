"""Exception hierarchy for the reconciliation engine.

Per-record problems (bad caller ids, unknown routing ids, remote write failures)
are absorbed into the run report. Only the errors below that escape a run are
fatal: configuration problems, a failed first page of a fetch, and a schema that
does not satisfy the contract checked at startup.
"""


class ReconciliationError(Exception):
    """Base class for engine errors."""


class ConfigurationError(ReconciliationError):
    """Missing credentials or an unusable setting."""


class FetchError(ReconciliationError):
    """The first page of a paginated fetch failed."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class SchemaContractError(ReconciliationError):
    """The persisted schema does not provide the required columns."""

    def __init__(self, missing: dict[str, list[str]]):
        self.missing = missing
        detail = "; ".join(f"{table}: {', '.join(cols)}" for table, cols in sorted(missing.items()))
        super().__init__(f"Schema contract not satisfied ({detail})")


class RemoteWriteError(ReconciliationError):
    """A write to the remote counterpart failed."""
