"""CLI entrypoint."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv as _load_dotenv

from tour_discovery import config
from tour_discovery.config import ConfigProvider, EnvConfigProvider, Settings, load_settings
from tour_discovery.errors import ConfigError, TourApiError, ValidationRejection, error_message
from tour_discovery.geo import format_coordinates, normalize
from tour_discovery.http import HttpClient, RequestBudget, RequestMetrics
from tour_discovery.models import FilterContext, TourItem
from tour_discovery.pagination import PageState, PaginationController, SessionSnapshot
from tour_discovery.stats import get_stats_data, stats_to_dict
from tour_discovery.tour_client import ApiClient, TourClient

DEFAULT_MAX_REQUESTS = 200


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Browse Korea Tourism Organization points of interest")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--preflight", action="store_true", help="Run offline checks only")
    group.add_argument(
        "--preflight-online",
        action="store_true",
        help="Run offline checks + one count-only API call",
    )
    group.add_argument("--detail", type=str, default=None, help="Show details for one content id")
    group.add_argument("--stats", action="store_true", help="Print region/category statistics as JSON")
    parser.add_argument("--area", type=str, default=None, help="Area code filter")
    parser.add_argument("--types", type=str, default=None, help="Comma-separated content type ids")
    parser.add_argument("--keyword", type=str, default=None, help="Keyword search")
    parser.add_argument("--sort", choices=["recent", "latest", "name"], default=None)
    parser.add_argument("--pages", type=int, default=1, help="Number of pages to load (default: 1)")
    parser.add_argument("--page-size", type=int, default=None)
    parser.add_argument("--max-requests", type=int, default=DEFAULT_MAX_REQUESTS)
    parser.add_argument("--config", type=str, default=None, help="Path to tour_config.json")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def build_tour_client(
    settings: Settings,
    metrics: Optional[RequestMetrics] = None,
    max_requests: int = DEFAULT_MAX_REQUESTS,
) -> TourClient:
    budget = RequestBudget(max_requests=max_requests, metrics=metrics)
    http_client = HttpClient(timeout=settings.timeout, budget=budget, metrics=metrics)
    api = ApiClient(http_client, settings.service_key, mobile_app=settings.mobile_app)
    return TourClient(api)


def item_to_dict(item: TourItem) -> Dict[str, Any]:
    point = normalize(item.raw_x, item.raw_y)
    return {
        "id": item.id,
        "categoryId": item.category_id,
        "category": item.category_name,
        "title": item.title,
        "address": item.full_address,
        "lat": point.lat if point else None,
        "lng": point.lng if point else None,
        "thumbnail": item.https_thumbnail,
        "lastModified": item.last_modified,
    }


def format_item_line(item: TourItem) -> str:
    point = normalize(item.raw_x, item.raw_y)
    where = format_coordinates(point.lat, point.lng) if point else "-"
    return f"{item.id}\t{item.category_name}\t{item.title}\t{item.full_address}\t{where}"


async def browse(
    client: TourClient,
    context: FilterContext,
    pages: int,
    page_size: Optional[int] = None,
    as_json: bool = False,
) -> int:
    controller = PaginationController(client.fetch_tours, page_size=page_size)
    snapshot = await controller.reset(context)
    while snapshot.state is PageState.READY and snapshot.current_page < pages and not snapshot.exhausted:
        snapshot = await controller.load_next()
    return print_snapshot(snapshot, as_json)


def print_snapshot(snapshot: SessionSnapshot, as_json: bool = False) -> int:
    if as_json:
        print(
            json.dumps(
                {
                    "totalCount": snapshot.total_count,
                    "page": snapshot.current_page,
                    "exhausted": snapshot.exhausted,
                    "items": [item_to_dict(i) for i in snapshot.items],
                },
                ensure_ascii=False,
                indent=2,
            )
        )
    else:
        for item in snapshot.items:
            print(format_item_line(item))
        total = snapshot.total_count if snapshot.total_count is not None else "?"
        print(f"-- {len(snapshot.items)} of {total} loaded (page {snapshot.current_page})")
    if snapshot.state is PageState.FAILED:
        hint = " (retry possible)" if snapshot.can_retry else ""
        print(f"Error: {snapshot.error_text}{hint}", file=sys.stderr)
        return 1
    return 0


async def show_detail(client: TourClient, content_id: str) -> int:
    common = await client.get_detail_common(content_id)
    if isinstance(common, ValidationRejection):
        print(f"Error: {common.message}", file=sys.stderr)
        return 2
    if not common:
        print(f"No tour found for id {content_id}", file=sys.stderr)
        return 1
    detail = common[0]
    intro, images, pet = await asyncio.gather(
        client.get_detail_intro(detail.id, detail.category_id),
        client.get_detail_image(detail.id),
        client.get_detail_pet_tour(detail.id),
        return_exceptions=True,
    )
    point = normalize(detail.raw_x, detail.raw_y)
    print(detail.title)
    print(f"  address: {detail.address}")
    print(f"  location: {format_coordinates(point.lat, point.lng) if point else '-'}")
    if detail.tel:
        print(f"  tel: {detail.tel}")
    if detail.homepage:
        print(f"  homepage: {detail.homepage}")
    if detail.overview:
        print(f"  overview: {detail.overview}")
    if isinstance(intro, list):
        for entry in intro:
            for key, value in sorted(entry.fields.items()):
                print(f"  {key}: {value}")
    if isinstance(images, list):
        print(f"  images: {len(images)}")
    if isinstance(pet, list) and pet:
        print(f"  pets: {pet[0].info or pet[0].leash or '-'}")
    for label, res in (("intro", intro), ("images", images), ("pets", pet)):
        if isinstance(res, BaseException):
            logging.getLogger(__name__).warning("Detail section %s unavailable: %s", label, res)
    return 0


def run_preflight(provider: ConfigProvider, online: bool, max_requests: int) -> int:
    ok = True
    try:
        settings = load_settings(provider)
        print("API key: OK")
    except ConfigError as exc:
        print(f"API key: MISSING ({exc})")
        settings = None
        ok = False

    print(f"Page size: {config.PAGE_SIZE}, retry delays: {list(config.HTTP_RETRY_DELAYS)}")

    if online:
        if settings is None:
            print("Online call: FAIL (missing API key)")
            ok = False
        else:
            client = build_tour_client(settings, max_requests=min(max_requests, 4))
            try:
                total = asyncio.run(client.fetch_total_count({}))
                print(f"Online call: OK (totalCount={total})")
            except TourApiError as exc:
                print(f"Online call: FAIL ({error_message(exc)})")
                ok = False

    return 0 if ok else 1


def main(argv: Optional[List[str]] = None, provider: Optional[ConfigProvider] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if provider is None:
        load_env()
        provider = EnvConfigProvider()
    if args.config:
        if not config.load_tour_config(args.config):
            print(f"Config file not found: {args.config}", file=sys.stderr)
            return 2
    else:
        config.load_tour_config()

    if args.preflight or args.preflight_online:
        return run_preflight(provider, online=args.preflight_online, max_requests=args.max_requests)

    try:
        settings = load_settings(provider)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    metrics = RequestMetrics()
    client = build_tour_client(settings, metrics=metrics, max_requests=args.max_requests)
    try:
        if args.detail is not None:
            return asyncio.run(show_detail(client, args.detail))
        if args.stats:
            data = asyncio.run(get_stats_data(client))
            print(json.dumps(stats_to_dict(data), ensure_ascii=False, indent=2))
            return 0
        context = FilterContext(
            area_code=args.area,
            category_ids=args.types,
            keyword=args.keyword,
            sort_order=args.sort or config.DEFAULT_SORT,
        )
        return asyncio.run(browse(client, context, max(1, args.pages), args.page_size, args.json))
    except TourApiError as exc:
        print(f"Error: {error_message(exc)}", file=sys.stderr)
        return 1
    finally:
        logging.getLogger(__name__).info(
            "Requests: network=%s retries=%s api_errors=%s transport_errors=%s",
            metrics.network_requests,
            metrics.retries,
            metrics.api_errors,
            metrics.transport_errors,
        )
        client.api.http.close()


if __name__ == "__main__":
    sys.exit(main())
