import logging
import random
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from .allocation import DEFAULT_STEP, CostAllocationPipeline, parse_step
from .config import VERSION, Settings, get_settings
from .metrics import allocation_responses, scrape_metrics, snapshot_responses
from .prometheus import PrometheusClient
from .schemas import CostAllocationResponse, HealthResponse, MetricsResponse, Recommendation, Resolution, Window
from .snapshot import cluster_snapshot

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="[greenboard] %(levelname)s %(name)s: %(message)s")
LOG = logging.getLogger(__name__)

LABEL_NAME = r"^[a-zA-Z_][a-zA-Z0-9_]*$"

RECOMMENDATIONS = [
    Recommendation(
        id="REC-001",
        type="Right-sizing",
        description="Downsize analytics-worker-pool nodes",
        potential_savings=15.00,
        potential_carbon_reduction=40,
        confidence="High",
    ),
    Recommendation(
        id="REC-002",
        type="Time-shifting",
        description="Schedule batch-job-xyz to 02:00 AM UTC (High Renewables Window)",
        potential_savings=2.00,
        potential_carbon_reduction=15,
        confidence="Medium",
    ),
]

app = FastAPI(title="Greenboard Cost & Carbon API", version=VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_prometheus(settings: Settings = Depends(get_settings)) -> PrometheusClient:
    return PrometheusClient(settings)


def get_rng() -> random.Random:
    return random.Random()


@app.on_event("startup")
def startup_event():
    if settings.prometheus_url:
        LOG.info("Using Prometheus at %s", settings.prometheus_url)
    else:
        LOG.warning("PROMETHEUS_URL not set; serving synthetic and mock data only")


@app.get("/api/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", version=VERSION)


@app.get("/api/metrics", response_model=MetricsResponse)
async def metrics_snapshot(prometheus: PrometheusClient = Depends(get_prometheus)):
    snapshot = await cluster_snapshot(prometheus)
    snapshot_responses.labels(source=snapshot.source).inc()
    return snapshot


@app.get("/api/cost-allocation", response_model=CostAllocationResponse)
async def cost_allocation(
    window: Window = Window.WEEK,
    resolution: Resolution = Resolution.DAILY,
    aggregate: str = Query("namespace", pattern=LABEL_NAME),
    step: str = str(DEFAULT_STEP),
    prometheus: PrometheusClient = Depends(get_prometheus),
    rng: random.Random = Depends(get_rng),
):
    try:
        parse_step(step)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    pipeline = CostAllocationPipeline(prometheus, rng=rng)
    result = await pipeline.run(window=window, resolution=resolution, aggregate=aggregate, step=step)
    allocation_responses.labels(source=result.source.value).inc()
    return result


@app.get("/api/recommendations", response_model=List[Recommendation])
def recommendations():
    return RECOMMENDATIONS


@app.get("/metrics")
def metrics():
    output, ctype = scrape_metrics()
    return Response(content=output, media_type=ctype)
