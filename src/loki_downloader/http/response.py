"""
Models of the Loki ``query_range`` response.

Reference: https://grafana.com/docs/loki/latest/reference/loki-http-api/#query-logs-within-a-range-of-time
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Tuple, Union

from pydantic import BaseModel, Field


class StreamResult(BaseModel):
    """One log stream: labels plus ``[<ns epoch string>, <log line>]`` pairs."""

    stream: Dict[str, str] = Field(default_factory=dict)
    values: List[Tuple[str, str]] = Field(default_factory=list)


class MatrixResult(BaseModel):
    """One metric series: labels plus ``[<seconds epoch>, <value>]`` pairs."""

    metric: Dict[str, str] = Field(default_factory=dict)
    values: List[Tuple[Decimal, str]] = Field(default_factory=list)


class StreamsData(BaseModel):
    resultType: Literal["streams"]
    result: List[StreamResult] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)


class MatrixData(BaseModel):
    resultType: Literal["matrix"]
    result: List[MatrixResult] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)


class QueryRangeResponse(BaseModel):
    """Top level ``query_range`` payload."""

    status: Literal["success", "error"]
    data: Annotated[Union[StreamsData, MatrixData], Field(discriminator="resultType")]
