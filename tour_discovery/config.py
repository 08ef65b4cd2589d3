"""Project configuration.

Loads optional overrides from tour_config.json when available, falling back to
sensible defaults. Keep API request shapes centralized here. Credentials are
never read from the process environment directly: they come from a
ConfigProvider so the clients stay testable.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from .errors import ConfigError

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

TOUR_API_BASE_URL = "https://apis.data.go.kr/B551011/KorService2"

AREA_CODE_PATH = "/areaCode2"
AREA_BASED_LIST_PATH = "/areaBasedList2"
SEARCH_KEYWORD_PATH = "/searchKeyword2"
DETAIL_COMMON_PATH = "/detailCommon2"
DETAIL_INTRO_PATH = "/detailIntro2"
DETAIL_IMAGE_PATH = "/detailImage2"
DETAIL_PET_TOUR_PATH = "/detailPetTour2"

MAP_DIRECTIONS_URL = "https://map.naver.com/v5/directions/-/{lat},{lng}"

# --- Fixed request parameters ---

MOBILE_OS = "ETC"
MOBILE_APP = "MyTrip"
RESPONSE_TYPE = "json"

RESULT_CODE_OK = "0000"

# --- Pagination ---

DEFAULT_NUM_OF_ROWS = 10
DEFAULT_PAGE_NO = 1
PAGE_SIZE = 20
DEFAULT_SORT = "recent"

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 10
# Delay before retry N (1-based). The table length is the retry cap.
HTTP_RETRY_DELAYS: Tuple[float, ...] = (1.0, 2.0, 4.0)

# --- Service area ---

SERVICE_BBOX: Dict[str, float] = {
    "lat_min": 32.5,
    "lat_max": 43.5,
    "lon_min": 123.5,
    "lon_max": 132.5,
}
KATEC_THRESHOLD = 1_000_000
KATEC_SCALE = 10_000_000

# Seoul City Hall
DEFAULT_CENTER: Dict[str, float] = {"lat": 37.5665, "lon": 126.9780}

# --- Map ---

MAP_READY_TIMEOUT_SECONDS = 5.0

# --- Stats ---

STATS_TOP_N = 3


class ConfigProvider(Protocol):
    def get(self, name: str) -> Optional[str]:
        ...


class EnvConfigProvider:
    """Reads values from the process environment (or any mapping)."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def get(self, name: str) -> Optional[str]:
        value = self._environ.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None


class StaticConfigProvider:
    def __init__(self, values: Optional[Dict[str, str]] = None) -> None:
        self._values = dict(values or {})

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name) or None


@dataclass(frozen=True)
class Settings:
    service_key: str
    map_client_id: Optional[str] = None
    mobile_app: str = MOBILE_APP
    timeout: float = HTTP_TIMEOUT_SECONDS


def load_settings(provider: ConfigProvider, require_service_key: bool = True) -> Settings:
    """Build Settings from a provider.

    The service key is looked up under TOUR_API_KEY first, then
    NEXT_PUBLIC_TOUR_API_KEY, matching the deployed web frontend.
    """
    service_key = provider.get("TOUR_API_KEY") or provider.get("NEXT_PUBLIC_TOUR_API_KEY")
    if not service_key and require_service_key:
        raise ConfigError("Service key missing: set TOUR_API_KEY or NEXT_PUBLIC_TOUR_API_KEY")
    map_client_id = provider.get("NAVER_MAP_CLIENT_ID") or provider.get(
        "NEXT_PUBLIC_NAVER_MAP_CLIENT_ID"
    )
    timeout_raw = provider.get("TOUR_HTTP_TIMEOUT")
    try:
        timeout = float(timeout_raw) if timeout_raw else float(HTTP_TIMEOUT_SECONDS)
    except ValueError:
        raise ConfigError(f"TOUR_HTTP_TIMEOUT must be a number, got {timeout_raw!r}")
    return Settings(
        service_key=service_key or "",
        map_client_id=map_client_id,
        mobile_app=provider.get("TOUR_MOBILE_APP") or MOBILE_APP,
        timeout=timeout,
    )


def load_tour_config(path: Optional[str] = None) -> bool:
    """Load overrides from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "tour_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data: Dict[str, Any] = json.load(f)

    globals_ref = globals()

    page_size = data.get("page_size")
    if page_size is not None:
        if int(page_size) < 1:
            raise ConfigError("page_size must be >= 1")
        globals_ref["PAGE_SIZE"] = int(page_size)

    sort = data.get("default_sort")
    if sort:
        globals_ref["DEFAULT_SORT"] = str(sort)

    http = data.get("http", {})
    if "timeout_seconds" in http:
        globals_ref["HTTP_TIMEOUT_SECONDS"] = float(http["timeout_seconds"])
    if "retry_delays" in http:
        globals_ref["HTTP_RETRY_DELAYS"] = tuple(float(d) for d in http["retry_delays"])

    center = data.get("default_center", {})
    if center.get("lat") is not None and center.get("lon") is not None:
        globals_ref["DEFAULT_CENTER"] = {"lat": float(center["lat"]), "lon": float(center["lon"])}

    if data.get("mobile_app"):
        globals_ref["MOBILE_APP"] = str(data["mobile_app"])

    if data.get("map_ready_timeout_seconds") is not None:
        globals_ref["MAP_READY_TIMEOUT_SECONDS"] = float(data["map_ready_timeout_seconds"])

    return True
