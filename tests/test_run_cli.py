import json

import run
from tour_discovery.config import StaticConfigProvider
from tour_discovery.http import HttpClient
from tour_discovery.tour_client import ApiClient, TourClient


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload
        self.status_code = 200
        self.reason = "OK"
        self.headers = {}

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, payloads):
        self.payloads = list(payloads)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        return FakeResponse(self.payloads.pop(0))

    def close(self):
        pass


class RoutingSession:
    """Answers by endpoint and filter; stats requests run concurrently."""

    def get(self, url, params=None, headers=None, timeout=None):
        params = params or {}
        if url.endswith("/areaCode2"):
            return FakeResponse(envelope([{"code": "1", "name": "서울"}], 1))
        if "areaCode" in params or "contentTypeId" in params:
            return FakeResponse(envelope([], 5))
        return FakeResponse(envelope([], 10))

    def close(self):
        pass


def envelope(items, total):
    return {
        "response": {
            "header": {"resultCode": "0000", "resultMsg": "OK"},
            "body": {"items": {"item": items}, "totalCount": total, "pageNo": 1, "numOfRows": 20},
        }
    }


ITEMS = [
    {
        "contentid": "1",
        "contenttypeid": "12",
        "title": "경복궁",
        "addr1": "서울 종로구",
        "mapx": "126.9769",
        "mapy": "37.5788",
        "modifiedtime": "20240101000000",
    },
    {
        "contentid": "2",
        "contenttypeid": "39",
        "title": "광장시장",
        "addr1": "서울 종로구",
        "mapx": "",
        "mapy": "",
        "modifiedtime": "20240301000000",
    },
]


def install_fake_client(monkeypatch, payloads):
    session = FakeSession(payloads)

    async def no_sleep(_delay):
        return None

    def fake_build(settings, metrics=None, max_requests=run.DEFAULT_MAX_REQUESTS):
        http = HttpClient(session=session, sleep=no_sleep, metrics=metrics)
        return TourClient(ApiClient(http, settings.service_key))

    monkeypatch.setattr(run, "build_tour_client", fake_build)
    return session


def test_browse_prints_sorted_items(monkeypatch, capsys):
    session = install_fake_client(monkeypatch, [envelope(ITEMS, 2)])
    provider = StaticConfigProvider({"TOUR_API_KEY": "k"})

    code = run.main(["--area", "1"], provider=provider)

    out = capsys.readouterr().out.splitlines()
    assert code == 0
    assert out[0].startswith("2\t음식점\t광장시장")
    assert out[0].endswith("\t-")
    assert out[1].startswith("1\t관광지\t경복궁")
    assert "°N" in out[1]
    assert out[-1] == "-- 2 of 2 loaded (page 1)"
    assert session.calls[0][1]["areaCode"] == "1"


def test_browse_json_output(monkeypatch, capsys):
    install_fake_client(monkeypatch, [envelope(ITEMS, 2)])
    provider = StaticConfigProvider({"TOUR_API_KEY": "k"})

    code = run.main(["--json", "--sort", "name"], provider=provider)

    data = json.loads(capsys.readouterr().out)
    assert code == 0
    assert data["totalCount"] == 2
    assert [i["title"] for i in data["items"]] == ["경복궁", "광장시장"]
    assert data["items"][1]["lat"] is None


def test_missing_key_exits_with_config_error(capsys):
    code = run.main(["--area", "1"], provider=StaticConfigProvider({}))
    assert code == 2
    assert "TOUR_API_KEY" in capsys.readouterr().err


def test_offline_preflight(capsys):
    code = run.main(["--preflight"], provider=StaticConfigProvider({"TOUR_API_KEY": "k"}))
    out = capsys.readouterr().out
    assert code == 0
    assert "API key: OK" in out


def test_stats_prints_json(monkeypatch, capsys):
    session = RoutingSession()

    async def no_sleep(_delay):
        return None

    def fake_build(settings, metrics=None, max_requests=run.DEFAULT_MAX_REQUESTS):
        return TourClient(ApiClient(HttpClient(session=session, sleep=no_sleep), settings.service_key))

    monkeypatch.setattr(run, "build_tour_client", fake_build)

    code = run.main(["--stats"], provider=StaticConfigProvider({"TOUR_API_KEY": "k"}))

    data = json.loads(capsys.readouterr().out)
    assert code == 0
    assert data["regionStats"] == [{"areaCode": "1", "regionName": "서울", "count": 5}]
    assert len(data["typeStats"]) == 8


def test_detail_prints_sections(monkeypatch, capsys):
    detail = dict(ITEMS[0], overview="조선 왕조의 법궁", tel="02-3700-3900")
    pet = {"contentid": "1", "contenttypeid": "12", "chkpetleash": "목줄 필수"}
    intro = {"contentid": "1", "contenttypeid": "12", "usetime": "09:00~18:00"}

    class DetailSession(RoutingSession):
        def get(self, url, params=None, headers=None, timeout=None):
            if url.endswith("/detailCommon2"):
                return FakeResponse(envelope(detail, 1))
            if url.endswith("/detailIntro2"):
                return FakeResponse(envelope(intro, 1))
            if url.endswith("/detailPetTour2"):
                return FakeResponse(envelope(pet, 1))
            return FakeResponse(envelope([], 0))

    session = DetailSession()

    async def no_sleep(_delay):
        return None

    def fake_build(settings, metrics=None, max_requests=run.DEFAULT_MAX_REQUESTS):
        return TourClient(ApiClient(HttpClient(session=session, sleep=no_sleep), settings.service_key))

    monkeypatch.setattr(run, "build_tour_client", fake_build)

    code = run.main(["--detail", "1"], provider=StaticConfigProvider({"TOUR_API_KEY": "k"}))

    out = capsys.readouterr().out
    assert code == 0
    assert out.splitlines()[0] == "경복궁"
    assert "overview: 조선 왕조의 법궁" in out
    assert "usetime: 09:00~18:00" in out
    assert "images: 0" in out
    assert "pets: 목줄 필수" in out
