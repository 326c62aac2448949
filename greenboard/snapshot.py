import asyncio
import datetime as dt
import logging
from typing import Dict, List, Sequence

from .exceptions import GreenboardError
from .metrics import record_backend_failure
from .prometheus import PrometheusClient, Series, label, sample_value
from .schemas import MetricData, MetricsResponse

LOG = logging.getLogger(__name__)

CPU_QUERY = "sum(rate(container_cpu_usage_seconds_total[5m])) by (namespace)"
MEM_QUERY = "sum(container_memory_usage_bytes) by (namespace)"
CAPACITY_QUERY = "sum(machine_cpu_cores)"

WATTS_PER_CORE = 4
IDLE_WATTS_PER_CORE = 2
CARBON_G_PER_KWH = 475  # global average grid intensity
CPU_COST_PER_CORE_HOUR = 0.05
RAM_COST_PER_GB_HOUR = 0.005
IDLE = "(Idle)"

MOCK_DATA = [
    MetricData(namespace="default", energy_usage=120, carbon_emission=45, cost=12.50),
    MetricData(namespace="kube-system", energy_usage=50, carbon_emission=18, cost=5.20),
    MetricData(namespace="analytics", energy_usage=350, carbon_emission=130, cost=45.00),
]


def _carbon(watts: float) -> float:
    return watts / 1000 * CARBON_G_PER_KWH


def summarize(cpu: Sequence[Series], mem: Sequence[Series], capacity: Sequence[Series]) -> List[MetricData]:
    """Energy, carbon and cost per namespace plus an idle-capacity entry."""
    totals: Dict[str, Dict[str, float]] = {}

    def entry(ns: str) -> Dict[str, float]:
        return totals.setdefault(ns, {"energy": 0.0, "carbon": 0.0, "cost": 0.0})

    allocated = 0.0
    for s in cpu:
        cores = sample_value(s.get("value") or [])
        allocated += cores
        e = entry(label(s, "namespace") or "unknown")
        energy = cores * WATTS_PER_CORE
        e["energy"] += energy
        e["carbon"] += _carbon(energy)
        e["cost"] += cores * CPU_COST_PER_CORE_HOUR

    total_cores = sample_value(capacity[0].get("value") or []) if capacity else 0.0
    idle = max(0.0, total_cores - allocated)
    if idle > 0:
        energy = idle * IDLE_WATTS_PER_CORE
        totals[IDLE] = {"energy": energy, "carbon": _carbon(energy), "cost": idle * CPU_COST_PER_CORE_HOUR}

    for s in mem:
        gb = sample_value(s.get("value") or []) / 1024 ** 3
        entry(label(s, "namespace") or "unknown")["cost"] += gb * RAM_COST_PER_GB_HOUR

    return [
        MetricData(
            namespace=ns,
            energy_usage=round(t["energy"], 2),
            carbon_emission=round(t["carbon"], 2),
            cost=round(t["cost"], 4),
        )
        for ns, t in totals.items()
    ]


async def collect_snapshot(prometheus: PrometheusClient) -> List[MetricData]:
    async with prometheus as prom:
        results = await asyncio.gather(
            prom.query(CPU_QUERY), prom.query(MEM_QUERY), prom.query(CAPACITY_QUERY), return_exceptions=True
        )
    for res in results:
        if isinstance(res, GreenboardError):
            LOG.warning("Snapshot query failed: %s", res)
            record_backend_failure(res)
            return []
        if isinstance(res, BaseException):
            raise res
    cpu, mem, capacity = results
    return summarize(cpu, mem, capacity)


async def cluster_snapshot(prometheus: PrometheusClient) -> MetricsResponse:
    data = await collect_snapshot(prometheus)
    source = "Prometheus"
    if not data:
        LOG.info("Using mock data (Prometheus unavailable or empty)")
        data, source = list(MOCK_DATA), "Mock"
    return MetricsResponse(
        timestamp=dt.datetime.now(dt.timezone.utc).isoformat(),
        data=data,
        source=source,
    )
