class GreenboardError(Exception):
    """Base class for errors raised while talking to the metrics backend."""

    kind = "error"


class ConfigurationMissing(GreenboardError):
    kind = "unconfigured"


class BackendQueryFailed(GreenboardError):
    kind = "query_failed"

    def __init__(self, message: str, query: str = ""):
        super().__init__(message)
        self.query = query
