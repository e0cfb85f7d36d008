__all__ = ['DashboardError', 'FetchFailure', 'ComputationFailure', 'RemoteProcedureFailure']


class DashboardError(Exception):
    """Base class for errors surfaced to the dashboard."""


class FetchFailure(DashboardError):
    """A read query against the data source failed; the load pass is aborted."""


class ComputationFailure(FetchFailure):
    """Fetched rows could not be folded (e.g. an unparseable date)."""


class RemoteProcedureFailure(DashboardError):
    def __init__(self, function_name: str, message: str):
        super().__init__(f"{function_name}: {message}")
        self.function_name = function_name
        self.message = message
