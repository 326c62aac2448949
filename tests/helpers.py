import datetime as dt

NOW = dt.datetime(2024, 5, 10, 12, 0, tzinfo=dt.timezone.utc)
END = int(NOW.timestamp())


def range_series(labels, points):
    """Build a Prometheus matrix series from ``{ts: value}``."""
    return {"metric": dict(labels), "values": [[ts, str(v)] for ts, v in sorted(points.items())]}


def vector_series(labels, value, ts=END):
    return {"metric": dict(labels), "value": [ts, str(value)]}


def matrix_body(series):
    return {"status": "success", "data": {"resultType": "matrix", "result": list(series)}}


def vector_body(series):
    return {"status": "success", "data": {"resultType": "vector", "result": list(series)}}


class StubPrometheus:
    """Stands in for PrometheusClient with canned query results.

    ``error_on`` limits ``error`` to range queries whose expression mentions
    "cpu" or "memory"; by default every query fails.
    """

    def __init__(self, cpu=None, mem=None, error=None, instant=None, error_on=None):
        self.cpu = cpu or []
        self.mem = mem or []
        self.error = error
        self.error_on = error_on
        self.instant = instant or {}
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def query_range(self, expr, start, end, step):
        self.calls.append((expr, start, end, step))
        if self.error and (self.error_on is None or self.error_on in expr):
            raise self.error
        return self.cpu if "cpu" in expr else self.mem

    async def query(self, expr):
        self.calls.append((expr,))
        if self.error:
            raise self.error
        return self.instant.get(expr, [])
