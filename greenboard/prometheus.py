import datetime as dt
import logging
import math
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings
from .exceptions import BackendQueryFailed, ConfigurationMissing

LOG = logging.getLogger(__name__)

Series = Dict[str, Any]


class PrometheusClient:
    """Thin async client for the Prometheus HTTP query API.

    Used as an async context manager so one connection pool serves all the
    queries of a single request:

        async with PrometheusClient(settings) as prom:
            series = await prom.query_range(expr, start, end, step)
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.prometheus_url
        self.timeout = settings.prometheus_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def __aenter__(self) -> "PrometheusClient":
        if self.configured:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def query(self, expr: str) -> List[Series]:
        return await self._get("/api/v1/query", {"query": expr})

    async def query_range(self, expr: str, start: int, end: int, step: int) -> List[Series]:
        return await self._get("/api/v1/query_range", {"query": expr, "start": start, "end": end, "step": step})

    async def _get(self, path: str, params: Dict[str, Any]) -> List[Series]:
        if not self.configured:
            raise ConfigurationMissing("PROMETHEUS_URL is not set")
        if self._client is None:
            raise RuntimeError("PrometheusClient must be used inside 'async with'")
        expr = params["query"]
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise BackendQueryFailed(f"{path} request failed: {e}", query=expr) from e
        except ValueError as e:
            raise BackendQueryFailed(f"{path} returned invalid JSON: {e}", query=expr) from e

        if not isinstance(body, dict) or body.get("status") != "success":
            error = body.get("error") if isinstance(body, dict) else None
            raise BackendQueryFailed(f"{path} returned status other than success: {error}", query=expr)
        data = body.get("data")
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, list) or not all(_well_formed(s) for s in result):
            raise BackendQueryFailed(f"{path} response has no valid result list", query=expr)
        LOG.debug("%s %r -> %d series", path, expr, len(result))
        return result


def _valid_timestamp(ts: Any) -> bool:
    if isinstance(ts, bool) or not isinstance(ts, (int, float)) or not math.isfinite(ts):
        return False
    try:
        dt.datetime.fromtimestamp(ts, tz=dt.timezone.utc)
    except (OverflowError, OSError, ValueError):
        return False
    return True


def _is_sample(sample: Any) -> bool:
    return isinstance(sample, (list, tuple)) and len(sample) == 2 and _valid_timestamp(sample[0])


def _well_formed(series: Any) -> bool:
    if not isinstance(series, dict):
        return False
    metric = series.get("metric", {})
    if not isinstance(metric, dict) or not all(isinstance(v, str) for v in metric.values()):
        return False
    if "values" in series:
        values = series["values"]
        return isinstance(values, list) and all(_is_sample(v) for v in values)
    if "value" in series:
        return _is_sample(series["value"])
    return True


def label(series: Series, name: str) -> Optional[str]:
    metric = series.get("metric") or {}
    return metric.get(name)


def sample_value(sample: List[Any]) -> float:
    """Parse the string value of a ``[timestamp, "value"]`` pair."""
    try:
        value = float(sample[1])
    except (TypeError, ValueError, IndexError):
        return 0.0
    return value if math.isfinite(value) else 0.0
