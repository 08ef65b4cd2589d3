"""Tour API client: request building, envelope unwrapping and endpoints."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from . import config
from .errors import ApiError, TransportError, ValidationRejection
from .http import HttpClient
from .models import (
    AreaCode,
    FilterContext,
    PetTourInfo,
    TourDetail,
    TourImage,
    TourIntro,
    TourPage,
    parse_tour_items,
)

logger = logging.getLogger(__name__)

ParamValue = Union[str, int, float, None]


@dataclass(frozen=True)
class CallOptions:
    retries: Optional[int] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class Envelope:
    items: List[Dict[str, Any]]
    total_count: Optional[int]
    page_no: Optional[int]
    num_of_rows: Optional[int]


def build_params(
    service_key: str,
    params: Optional[Mapping[str, ParamValue]] = None,
    mobile_app: Optional[str] = None,
) -> Dict[str, str]:
    """Merge the fixed service parameters with caller parameters.

    None values are dropped so they never reach the wire as text.
    """
    merged: Dict[str, ParamValue] = {
        "serviceKey": service_key,
        "MobileOS": config.MOBILE_OS,
        "MobileApp": mobile_app or config.MOBILE_APP,
        "_type": config.RESPONSE_TYPE,
    }
    if params:
        merged.update(params)
    return {key: str(value) for key, value in merged.items() if value is not None}


def unwrap_items(item: Any) -> List[Dict[str, Any]]:
    # Upstream sends a bare object for one result, a list for several, and
    # null / "" / nothing at all for none.
    if item is None or item == "":
        return []
    if isinstance(item, list):
        return [i for i in item if isinstance(i, dict)]
    if isinstance(item, dict):
        return [item]
    raise ApiError(f"Unexpected item shape: {type(item).__name__}", code="INVALID_RESPONSE")


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_envelope(payload: Any) -> Envelope:
    if not isinstance(payload, dict) or not isinstance(payload.get("response"), dict):
        raise ApiError("Response envelope missing", code="INVALID_RESPONSE")
    response = payload["response"]
    header = response.get("header") or {}
    result_code = str(header.get("resultCode", ""))
    if result_code != config.RESULT_CODE_OK:
        raise ApiError(header.get("resultMsg") or "Tour API returned an error", code=result_code or None)

    body = response.get("body") or {}
    items = body.get("items")
    item = items.get("item") if isinstance(items, dict) else None
    return Envelope(
        items=unwrap_items(item),
        total_count=_to_int(body.get("totalCount")),
        page_no=_to_int(body.get("pageNo")),
        num_of_rows=_to_int(body.get("numOfRows")),
    )


class ApiClient:
    def __init__(
        self,
        http_client: HttpClient,
        service_key: str,
        base_url: str = config.TOUR_API_BASE_URL,
        mobile_app: Optional[str] = None,
    ) -> None:
        self.http = http_client
        self.service_key = service_key
        self.base_url = base_url.rstrip("/")
        self.mobile_app = mobile_app

    async def call_page(
        self,
        endpoint: str,
        params: Optional[Mapping[str, ParamValue]] = None,
        options: Optional[CallOptions] = None,
    ) -> Envelope:
        options = options or CallOptions()
        query = build_params(self.service_key, params, self.mobile_app)
        try:
            payload = await self.http.get_json(
                f"{self.base_url}{endpoint}",
                query,
                timeout=options.timeout,
                retries=options.retries,
            )
            return parse_envelope(payload)
        except (ApiError, TransportError) as exc:
            if self.http.metrics is not None:
                self.http.metrics.inc_failure(exc)
            logger.info("Tour API %s answered %s", endpoint, exc)
            raise

    async def call(
        self,
        endpoint: str,
        params: Optional[Mapping[str, ParamValue]] = None,
        options: Optional[CallOptions] = None,
    ) -> List[Dict[str, Any]]:
        envelope = await self.call_page(endpoint, params, options)
        return envelope.items


def _required(value: Optional[str], field: str) -> Optional[ValidationRejection]:
    if value is None or not str(value).strip():
        return ValidationRejection(field=field, reason="required")
    return None


class TourClient:
    """Typed wrappers around the upstream endpoints."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_area_codes(self, area_code: Optional[str] = None) -> List[AreaCode]:
        raw = await self.api.call(config.AREA_CODE_PATH, {"areaCode": area_code or None, "numOfRows": 100})
        return [AreaCode.from_api(r) for r in raw]

    async def get_area_based_list(
        self,
        area_code: Optional[str] = None,
        content_type_id: Optional[str] = None,
        num_of_rows: int = config.DEFAULT_NUM_OF_ROWS,
        page_no: int = config.DEFAULT_PAGE_NO,
    ) -> TourPage:
        params = {
            "areaCode": area_code,
            "contentTypeId": content_type_id,
            "numOfRows": num_of_rows,
            "pageNo": page_no,
        }
        envelope = await self.api.call_page(config.AREA_BASED_LIST_PATH, params)
        return _to_tour_page(envelope, page_no, num_of_rows)

    async def search_keyword(
        self,
        keyword: Optional[str],
        area_code: Optional[str] = None,
        content_type_id: Optional[str] = None,
        num_of_rows: int = config.DEFAULT_NUM_OF_ROWS,
        page_no: int = config.DEFAULT_PAGE_NO,
    ) -> Union[TourPage, ValidationRejection]:
        rejection = _required(keyword, "keyword")
        if rejection:
            return rejection
        return await self._search_page(str(keyword).strip(), area_code, content_type_id, num_of_rows, page_no)

    async def _search_page(
        self,
        keyword: str,
        area_code: Optional[str],
        content_type_id: Optional[str],
        num_of_rows: int,
        page_no: int,
    ) -> TourPage:
        params = {
            "keyword": keyword,
            "areaCode": area_code,
            "contentTypeId": content_type_id,
            "numOfRows": num_of_rows,
            "pageNo": page_no,
        }
        envelope = await self.api.call_page(config.SEARCH_KEYWORD_PATH, params)
        return _to_tour_page(envelope, page_no, num_of_rows)

    async def fetch_tours(self, context: FilterContext, page_no: int, page_size: int) -> TourPage:
        """One page for a filter context: keyword search when a keyword is set."""
        if context.is_search:
            return await self._search_page(
                context.keyword,
                context.area_code,
                context.content_type_param,
                page_size,
                page_no,
            )
        return await self.get_area_based_list(
            area_code=context.area_code,
            content_type_id=context.content_type_param,
            num_of_rows=page_size,
            page_no=page_no,
        )

    async def fetch_total_count(self, params: Optional[Mapping[str, ParamValue]] = None) -> int:
        query: Dict[str, ParamValue] = dict(params or {})
        query.update({"numOfRows": 1, "pageNo": 1})
        envelope = await self.api.call_page(config.AREA_BASED_LIST_PATH, query)
        return envelope.total_count or 0

    async def get_detail_common(self, content_id: Optional[str]) -> Union[List[TourDetail], ValidationRejection]:
        rejection = _required(content_id, "content_id")
        if rejection:
            return rejection
        raw = await self.api.call(config.DETAIL_COMMON_PATH, {"contentId": str(content_id).strip()})
        return [TourDetail.from_api(r) for r in raw]

    async def get_detail_intro(
        self, content_id: Optional[str], content_type_id: Optional[str]
    ) -> Union[List[TourIntro], ValidationRejection]:
        rejection = _required(content_id, "content_id") or _required(content_type_id, "content_type_id")
        if rejection:
            return rejection
        params = {
            "contentId": str(content_id).strip(),
            "contentTypeId": str(content_type_id).strip(),
        }
        raw = await self.api.call(config.DETAIL_INTRO_PATH, params)
        return [TourIntro.from_api(r) for r in raw]

    async def get_detail_image(self, content_id: Optional[str]) -> Union[List[TourImage], ValidationRejection]:
        rejection = _required(content_id, "content_id")
        if rejection:
            return rejection
        raw = await self.api.call(config.DETAIL_IMAGE_PATH, {"contentId": str(content_id).strip()})
        return [TourImage.from_api(r) for r in raw]

    async def get_detail_pet_tour(self, content_id: Optional[str]) -> Union[List[PetTourInfo], ValidationRejection]:
        rejection = _required(content_id, "content_id")
        if rejection:
            return rejection
        raw = await self.api.call(config.DETAIL_PET_TOUR_PATH, {"contentId": str(content_id).strip()})
        return [PetTourInfo.from_api(r) for r in raw]


def _to_tour_page(envelope: Envelope, page_no: int, num_of_rows: int) -> TourPage:
    return TourPage(
        items=parse_tour_items(envelope.items),
        total_count=envelope.total_count,
        page_no=envelope.page_no or page_no,
        num_of_rows=envelope.num_of_rows or num_of_rows,
    )
