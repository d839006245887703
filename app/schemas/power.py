from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PowerUsageResponse(BaseModel):
    """Estimated current power draw of a blockchain network."""

    model_config = ConfigDict(populate_by_name=True)

    current_wattage: int = Field(
        ...,
        alias="currentWattage",
        description="Estimated network power draw in watts",
    )
    timestamp: datetime = Field(..., description="UTC time of the estimate")
    trend: Literal["increasing", "decreasing", "stable"] = Field(
        ...,
        description="Hashrate trend compared to the previous sample",
    )
