"""Cost-allocation pipeline.

Turns two Prometheus range queries (CPU core-seconds, memory bytes) into a
daily cost table per group key, backfills missing days with synthetic rows
and optionally collapses the table into one total per group key.
"""
import asyncio
import datetime as dt
import logging
import random
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import GreenboardError
from .metrics import record_backend_failure
from .prometheus import PrometheusClient, Series, label, sample_value
from .schemas import CostAllocationResponse, DailyCostRow, Resolution, Source, Window

LOG = logging.getLogger(__name__)

CPU_COST_PER_CORE_HOUR = 0.05
RAM_COST_PER_GB_HOUR = 0.005
GIB = 1024 ** 3

DEFAULT_STEP = 86400
HOURLY_STEP = 3600
FALLBACK_GROUP_KEYS = ("kube-system", "default", "prometheus")

_STEP_RE = re.compile(r"^(\d+)([smhdw]?)$")
_STEP_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def round4(value: float) -> float:
    return round(value, 4)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def parse_step(raw) -> int:
    """Accept plain seconds ("3600") or a Prometheus duration ("1h")."""
    match = _STEP_RE.match(str(raw).strip())
    if not match:
        raise ValueError(f"invalid step {raw!r}")
    seconds = int(match.group(1)) * _STEP_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError("step must be positive")
    return seconds


@dataclass(frozen=True)
class QueryPlan:
    start: int
    end: int
    step: int
    cpu_query: str
    mem_query: str


def plan_queries(window: Window, step: Union[int, str], aggregate: str, now: dt.datetime) -> QueryPlan:
    """Query window and expressions. ``step`` is the raw caller value.

    A 24h window left at the literal daily default ("86400") is queried
    hourly; any other spelling of a day (e.g. "1d") is kept as given.
    """
    end = int(now.timestamp())
    if window is Window.DAY and str(step).strip() == str(DEFAULT_STEP):
        step = HOURLY_STEP
    step = parse_step(step)
    selector = "1h" if window is Window.DAY else "24h"
    return QueryPlan(
        start=end - window.seconds,
        end=end,
        step=step,
        cpu_query=f"sum(increase(container_cpu_usage_seconds_total[{selector}])) by ({aggregate})",
        mem_query=f"sum(avg_over_time(container_memory_usage_bytes[{selector}])) by ({aggregate})",
    )


async def fetch_usage(prom: PrometheusClient, plan: QueryPlan) -> Tuple[List[Series], List[Series]]:
    """Run both range queries concurrently; any failure means no real data."""
    results = await asyncio.gather(
        prom.query_range(plan.cpu_query, plan.start, plan.end, plan.step),
        prom.query_range(plan.mem_query, plan.start, plan.end, plan.step),
        return_exceptions=True,
    )
    for res in results:
        if isinstance(res, GreenboardError):
            LOG.warning("Usage query failed, continuing without real data: %s", res)
            record_backend_failure(res)
            return [], []
        if isinstance(res, BaseException):
            raise res
    cpu, mem = results
    return cpu, mem


def _lookup(series: Sequence[Series], aggregate: str, key: str, ts) -> float:
    for s in series:
        if label(s, aggregate) != key:
            continue
        for sample in s.get("values") or []:
            if sample[0] == ts:
                return sample_value(sample)
        return 0.0
    return 0.0


def day_label(ts) -> str:
    # Day resolution even for hourly grids.
    return dt.datetime.fromtimestamp(float(ts), tz=dt.timezone.utc).date().isoformat()


def materialize(cpu: Sequence[Series], mem: Sequence[Series], aggregate: str, step: int) -> Tuple[List[DailyCostRow], List[str]]:
    """Cost rows for every (timestamp, group key) pair with non-zero usage.

    Group keys and timestamps come from the CPU series only; the memory
    series is assumed to share the same grid. Returns the rows and the group
    keys in first-seen order.
    """
    keys: Dict[str, None] = {}
    timestamps = set()
    for s in cpu:
        key = label(s, aggregate)
        if key:
            keys.setdefault(key)
        for sample in s.get("values") or []:
            timestamps.add(sample[0])

    hours = step / 3600
    rows: List[DailyCostRow] = []
    for ts in sorted(timestamps, key=float):
        date = day_label(ts)
        for key in keys:
            cpu_cost = _lookup(cpu, aggregate, key, ts) / 3600 * CPU_COST_PER_CORE_HOUR
            ram_cost = _lookup(mem, aggregate, key, ts) / GIB * RAM_COST_PER_GB_HOUR * hours
            if cpu_cost > 0 or ram_cost > 0:
                cpu_cost, ram_cost = round4(cpu_cost), round4(ram_cost)
                rows.append(DailyCostRow(
                    date=date,
                    group_key=key,
                    cpu_cost=cpu_cost,
                    ram_cost=ram_cost,
                    total_cost=round4(cpu_cost + ram_cost),
                ))
    return rows, list(keys)


def synthetic_row(date: str, key: str, rng: random.Random) -> DailyCostRow:
    base = 0.05 if key == "kube-system" else 0.02
    variance = rng.uniform(0.8, 1.2)
    cpu = round4(base * 0.7 * variance)
    ram = round4(base * 0.3 * variance)
    return DailyCostRow(date=date, group_key=key, cpu_cost=cpu, ram_cost=ram, total_cost=round4(cpu + ram))


def backfill(rows: List[DailyCostRow], window: Window, group_keys: Sequence[str], today: dt.date,
             rng: random.Random) -> List[DailyCostRow]:
    """Add synthetic rows for every day of the window that has no real row.

    Hourly (24h) windows are never backfilled. The result is stably sorted
    by date.
    """
    merged = list(rows)
    if window is not Window.DAY:
        existing = {r.date for r in rows}
        active = list(group_keys) or list(FALLBACK_GROUP_KEYS)
        for i in range(window.required_buckets - 1, -1, -1):
            date = (today - dt.timedelta(days=i)).isoformat()
            if date in existing:
                continue
            merged.extend(synthetic_row(date, key, rng) for key in active)
    merged.sort(key=lambda r: r.date)
    return merged


@dataclass
class _Totals:
    cpu: float = 0.0
    gpu: float = 0.0
    ram: float = 0.0
    pv: float = 0.0
    total: float = 0.0

    def add(self, row: DailyCostRow) -> None:
        self.cpu += row.cpu_cost
        self.gpu += row.gpu_cost
        self.ram += row.ram_cost
        self.pv += row.pv_cost
        self.total += row.total_cost


def aggregate_totals(rows: Sequence[DailyCostRow], window: Window) -> List[DailyCostRow]:
    """One row per group key, summed over the whole window, in first-seen order."""
    totals: Dict[str, _Totals] = {}
    for row in rows:
        totals.setdefault(row.group_key, _Totals()).add(row)
    date = f"Total ({window.value})"
    return [
        DailyCostRow(
            date=date,
            group_key=key,
            cpu_cost=round4(t.cpu),
            gpu_cost=round4(t.gpu),
            ram_cost=round4(t.ram),
            pv_cost=round4(t.pv),
            total_cost=round4(t.total),
        )
        for key, t in totals.items()
    ]


def provenance(real: int, synthetic: int) -> Source:
    if real and synthetic:
        return Source.MIXED
    if real:
        return Source.LIVE
    return Source.SYNTHETIC


class CostAllocationPipeline:
    def __init__(self, prometheus: PrometheusClient, rng: Optional[random.Random] = None,
                 clock: Callable[[], dt.datetime] = utcnow):
        self.prometheus = prometheus
        self.rng = rng or random.Random()
        self.clock = clock

    async def run(self, window: Window = Window.WEEK, resolution: Resolution = Resolution.DAILY,
                  aggregate: str = "namespace", step: Union[int, str] = DEFAULT_STEP) -> CostAllocationResponse:
        now = self.clock()
        plan = plan_queries(window, step, aggregate, now)
        async with self.prometheus as prom:
            cpu, mem = await fetch_usage(prom, plan)

        real, keys = materialize(cpu, mem, aggregate, plan.step)
        rows = backfill(real, window, keys, now.date(), self.rng)
        source = provenance(len(real), len(rows) - len(real))
        if source is not Source.LIVE:
            LOG.info("cost-allocation window=%s: %d real rows, %d synthetic", window.value, len(real), len(rows) - len(real))

        if resolution is Resolution.ENTIRE_WINDOW:
            rows = aggregate_totals(rows, window)
        return CostAllocationResponse(data=rows, source=source)
