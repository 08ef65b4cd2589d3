"""Domain types for tour items, filters and pages."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from . import config


class ContentType(str, Enum):
    TOURIST_SPOT = "12"
    CULTURAL_FACILITY = "14"
    FESTIVAL = "15"
    TOUR_COURSE = "25"
    LEISURE_SPORTS = "28"
    ACCOMMODATION = "32"
    SHOPPING = "38"
    RESTAURANT = "39"


CONTENT_TYPE_NAMES: Dict[str, str] = {
    ContentType.TOURIST_SPOT.value: "관광지",
    ContentType.CULTURAL_FACILITY.value: "문화시설",
    ContentType.FESTIVAL.value: "축제/행사",
    ContentType.TOUR_COURSE.value: "여행코스",
    ContentType.LEISURE_SPORTS.value: "레포츠",
    ContentType.ACCOMMODATION.value: "숙박",
    ContentType.SHOPPING.value: "쇼핑",
    ContentType.RESTAURANT.value: "음식점",
}

MARKER_COLORS: Dict[str, str] = {
    ContentType.TOURIST_SPOT.value: "#3B82F6",
    ContentType.CULTURAL_FACILITY.value: "#8B5CF6",
    ContentType.FESTIVAL.value: "#F59E0B",
    ContentType.TOUR_COURSE.value: "#10B981",
    ContentType.LEISURE_SPORTS.value: "#EF4444",
    ContentType.ACCOMMODATION.value: "#6366F1",
    ContentType.SHOPPING.value: "#EC4899",
    ContentType.RESTAURANT.value: "#F97316",
}
UNKNOWN_CONTENT_TYPE_NAME = "알 수 없음"
DEFAULT_MARKER_COLOR = "#6B7280"


def content_type_name(content_type_id: Optional[str]) -> str:
    return CONTENT_TYPE_NAMES.get(content_type_id or "", UNKNOWN_CONTENT_TYPE_NAME)


def marker_color(content_type_id: Optional[str]) -> str:
    return MARKER_COLORS.get(content_type_id or "", DEFAULT_MARKER_COLOR)


class SortOrder(str, Enum):
    RECENT = "recent"
    NAME = "name"

    @classmethod
    def parse(cls, value: Any) -> "SortOrder":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        if text in ("recent", "latest"):
            return cls.RECENT
        if text == "name":
            return cls.NAME
        raise ValueError(f"Unknown sort order: {value!r}")


class GeoPoint(NamedTuple):
    lat: float
    lng: float


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def ensure_https(url: Optional[str]) -> Optional[str]:
    if url and url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


@dataclass(frozen=True)
class Address:
    line1: str = ""
    line2: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.line1} {self.line2}" if self.line2 else self.line1


@dataclass(frozen=True)
class TourItem:
    id: str
    category_id: str
    title: str
    address: Address
    raw_x: str
    raw_y: str
    thumbnail_url: Optional[str]
    last_modified: str
    area_code: Optional[str] = None
    tel: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "TourItem":
        return cls(
            id=str(raw.get("contentid") or ""),
            category_id=str(raw.get("contenttypeid") or ""),
            title=str(raw.get("title") or ""),
            address=Address(
                line1=str(raw.get("addr1") or ""),
                line2=_clean(raw.get("addr2")),
            ),
            raw_x=str(raw.get("mapx") or ""),
            raw_y=str(raw.get("mapy") or ""),
            thumbnail_url=_clean(raw.get("firstimage")) or _clean(raw.get("firstimage2")),
            last_modified=str(raw.get("modifiedtime") or ""),
            area_code=_clean(raw.get("areacode")),
            tel=_clean(raw.get("tel")),
        )

    @property
    def full_address(self) -> str:
        return str(self.address)

    @property
    def https_thumbnail(self) -> Optional[str]:
        return ensure_https(self.thumbnail_url)

    @property
    def category_name(self) -> str:
        return content_type_name(self.category_id)


@dataclass(frozen=True)
class FilterContext:
    """Identity of one logical scroll session.

    Normalized on construction so that equivalent filters compare equal.
    """

    area_code: Optional[str] = None
    category_ids: Optional[Tuple[str, ...]] = None
    keyword: Optional[str] = None
    sort_order: SortOrder = SortOrder.RECENT

    def __post_init__(self) -> None:
        object.__setattr__(self, "area_code", _clean(self.area_code))
        object.__setattr__(self, "keyword", _clean(self.keyword))
        ids = self.category_ids
        if isinstance(ids, str):
            ids = ids.split(",")
        cleaned = tuple(sorted({c.strip() for c in (ids or ()) if c and c.strip()}))
        object.__setattr__(self, "category_ids", cleaned or None)
        object.__setattr__(self, "sort_order", SortOrder.parse(self.sort_order))

    @property
    def is_search(self) -> bool:
        return self.keyword is not None

    @property
    def content_type_param(self) -> Optional[str]:
        if not self.category_ids:
            return None
        return ",".join(self.category_ids)


@dataclass(frozen=True)
class PageRequest:
    filter_context: FilterContext
    page_number: int
    page_size: int

    def __post_init__(self) -> None:
        if self.page_number < 1:
            raise ValueError("page_number must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")


@dataclass(frozen=True)
class TourPage:
    items: List[TourItem]
    total_count: Optional[int]
    page_no: int
    num_of_rows: int


@dataclass(frozen=True)
class AreaCode:
    code: str
    name: str

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "AreaCode":
        return cls(code=str(raw.get("code") or ""), name=str(raw.get("name") or ""))


@dataclass(frozen=True)
class TourDetail:
    id: str
    category_id: str
    title: str
    address: Address
    raw_x: str
    raw_y: str
    zipcode: Optional[str] = None
    tel: Optional[str] = None
    homepage: Optional[str] = None
    overview: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "TourDetail":
        return cls(
            id=str(raw.get("contentid") or ""),
            category_id=str(raw.get("contenttypeid") or ""),
            title=str(raw.get("title") or ""),
            address=Address(line1=str(raw.get("addr1") or ""), line2=_clean(raw.get("addr2"))),
            raw_x=str(raw.get("mapx") or ""),
            raw_y=str(raw.get("mapy") or ""),
            zipcode=_clean(raw.get("zipcode")),
            tel=_clean(raw.get("tel")),
            homepage=_clean(raw.get("homepage")),
            overview=_clean(raw.get("overview")),
            image_url=_clean(raw.get("firstimage")) or _clean(raw.get("firstimage2")),
        )


@dataclass(frozen=True)
class TourIntro:
    # Fields differ per content type, so everything but the ids stays a dict.
    id: str
    category_id: str
    fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "TourIntro":
        extra = {
            k: str(v)
            for k, v in raw.items()
            if k not in ("contentid", "contenttypeid") and _clean(v) is not None
        }
        return cls(
            id=str(raw.get("contentid") or ""),
            category_id=str(raw.get("contenttypeid") or ""),
            fields=extra,
        )


@dataclass(frozen=True)
class TourImage:
    id: str
    origin_url: Optional[str]
    small_url: Optional[str]
    serial: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "TourImage":
        return cls(
            id=str(raw.get("contentid") or ""),
            origin_url=ensure_https(_clean(raw.get("originimgurl"))),
            small_url=ensure_https(_clean(raw.get("smallimageurl"))),
            serial=_clean(raw.get("serialnum")),
        )


@dataclass(frozen=True)
class PetTourInfo:
    id: str
    category_id: str
    leash: Optional[str] = None
    size: Optional[str] = None
    place: Optional[str] = None
    fee: Optional[str] = None
    info: Optional[str] = None
    parking: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "PetTourInfo":
        return cls(
            id=str(raw.get("contentid") or ""),
            category_id=str(raw.get("contenttypeid") or ""),
            leash=_clean(raw.get("chkpetleash")),
            size=_clean(raw.get("chkpetsize")),
            place=_clean(raw.get("chkpetplace")),
            fee=_clean(raw.get("chkpetfee")),
            info=_clean(raw.get("petinfo")),
            parking=_clean(raw.get("parking")),
        )


def parse_tour_items(raw_items: Iterable[Dict[str, Any]]) -> List[TourItem]:
    items: List[TourItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        item = TourItem.from_api(raw)
        if not item.id:
            continue
        items.append(item)
    return items


def default_filter_context() -> FilterContext:
    return FilterContext(sort_order=SortOrder.parse(config.DEFAULT_SORT))
