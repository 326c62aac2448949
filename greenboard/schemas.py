from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Window(str, Enum):
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def seconds(self) -> int:
        return {"24h": 24 * 3600, "7d": 7 * 86400, "30d": 30 * 86400}[self.value]

    @property
    def required_buckets(self) -> int:
        return {"24h": 24, "7d": 7, "30d": 30}[self.value]


class Resolution(str, Enum):
    DAILY = "Daily"
    ENTIRE_WINDOW = "Entire window"


class Source(str, Enum):
    LIVE = "live"
    SYNTHETIC = "synthetic"
    MIXED = "mixed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DailyCostRow(_CamelModel):
    date: str
    group_key: str = Field(alias="groupKey")
    cpu_cost: float = Field(0.0, alias="cpuCost")
    gpu_cost: float = Field(0.0, alias="gpuCost")
    ram_cost: float = Field(0.0, alias="ramCost")
    pv_cost: float = Field(0.0, alias="pvCost")
    total_cost: float = Field(0.0, alias="totalCost")


class CostAllocationResponse(BaseModel):
    data: List[DailyCostRow]
    source: Source


class MetricData(_CamelModel):
    namespace: str
    energy_usage: float = Field(alias="energyUsage")
    carbon_emission: float = Field(alias="carbonEmission")
    cost: float


class MetricsResponse(BaseModel):
    timestamp: str
    data: List[MetricData]
    source: str


class Recommendation(_CamelModel):
    id: str
    type: str
    description: str
    potential_savings: float = Field(alias="potentialSavings")
    potential_carbon_reduction: float = Field(alias="potentialCarbonReduction")
    confidence: str


class HealthResponse(BaseModel):
    status: str
    version: str
