"""Region and category statistics from count-only queries.

Every sub-request runs concurrently. A failed sub-request is logged and
contributes nothing; the aggregate is built from whatever succeeded.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, List, Optional, Sequence, Tuple, TypeVar

from . import config
from .models import CONTENT_TYPE_NAMES, ContentType
from .tour_client import TourClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RegionStats:
    area_code: str
    region_name: str
    count: int


@dataclass
class TypeStats:
    content_type_id: str
    type_name: str
    count: int
    percentage: Optional[float] = None


@dataclass
class StatsSummary:
    total_count: int
    top_regions: List[RegionStats]
    top_types: List[TypeStats]
    last_updated: str


@dataclass
class StatsData:
    region_stats: List[RegionStats]
    type_stats: List[TypeStats]
    summary: StatsSummary


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


async def gather_settled(labels: Sequence[str], coros: Sequence[Awaitable[T]]) -> List[Tuple[str, T]]:
    """Await all coroutines; keep (label, result) for the ones that succeeded."""
    results = await asyncio.gather(*coros, return_exceptions=True)
    settled: List[Tuple[str, T]] = []
    for label, res in zip(labels, results):
        if isinstance(res, BaseException):
            if not isinstance(res, Exception):
                raise res
            logger.warning("Stats sub-request %s failed: %s", label, res)
            continue
        settled.append((label, res))
    return settled


async def get_region_stats(client: TourClient) -> List[RegionStats]:
    areas = await client.get_area_codes()
    names = {area.code: area.name for area in areas}
    labels = [area.code for area in areas]
    coros = [client.fetch_total_count({"areaCode": area.code}) for area in areas]
    settled = await gather_settled(labels, coros)
    stats = [RegionStats(area_code=code, region_name=names[code], count=count) for code, count in settled]
    stats.sort(key=lambda s: s.count, reverse=True)
    return stats


def percentage(count: int, total: int) -> float:
    """Share of `total` in percent, two decimals, halves rounded up."""
    exact = Decimal(count) * 100 / Decimal(total)
    return float(exact.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


async def get_type_stats(client: TourClient) -> List[TypeStats]:
    labels = [ct.value for ct in ContentType]
    coros = [client.fetch_total_count({"contentTypeId": code}) for code in labels]
    settled = await gather_settled(labels, coros)
    stats = [
        TypeStats(content_type_id=code, type_name=CONTENT_TYPE_NAMES[code], count=count)
        for code, count in settled
    ]
    stats.sort(key=lambda s: s.count, reverse=True)

    total = sum(s.count for s in stats)
    if total > 0:
        for s in stats:
            s.percentage = percentage(s.count, total)
    return stats


def build_summary(
    total_count: int,
    region_stats: Sequence[RegionStats],
    type_stats: Sequence[TypeStats],
    top_n: Optional[int] = None,
) -> StatsSummary:
    n = config.STATS_TOP_N if top_n is None else top_n
    return StatsSummary(
        total_count=total_count,
        top_regions=list(region_stats[:n]),
        top_types=list(type_stats[:n]),
        last_updated=utc_now_iso(),
    )


async def get_stats_summary(client: TourClient) -> StatsSummary:
    data = await get_stats_data(client)
    return data.summary


async def get_stats_data(client: TourClient) -> StatsData:
    # The total is required; per-region and per-type lists tolerate gaps.
    total_count, region_stats, type_stats = await asyncio.gather(
        client.fetch_total_count({}),
        get_region_stats(client),
        get_type_stats(client),
    )
    return StatsData(
        region_stats=region_stats,
        type_stats=type_stats,
        summary=build_summary(total_count, region_stats, type_stats),
    )


def stats_to_dict(data: StatsData) -> dict:
    def region(s: RegionStats) -> dict:
        return {"areaCode": s.area_code, "regionName": s.region_name, "count": s.count}

    def ctype(s: TypeStats) -> dict:
        out: dict = {"contentTypeId": s.content_type_id, "typeName": s.type_name, "count": s.count}
        if s.percentage is not None:
            out["percentage"] = s.percentage
        return out

    summary = data.summary
    return {
        "regionStats": [region(s) for s in data.region_stats],
        "typeStats": [ctype(s) for s in data.type_stats],
        "summary": {
            "totalCount": summary.total_count,
            "topRegions": [region(s) for s in summary.top_regions],
            "topTypes": [ctype(s) for s in summary.top_types],
            "lastUpdated": summary.last_updated,
        },
    }
