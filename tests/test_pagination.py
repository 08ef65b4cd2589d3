import asyncio

from tour_discovery.errors import ApiError, TransportError
from tour_discovery.models import Address, FilterContext, SortOrder, TourItem, TourPage
from tour_discovery.pagination import PageState, PaginationController


def make_item(cid, title=None, modified="20240101000000"):
    return TourItem(
        id=cid,
        category_id="12",
        title=title or f"item {cid}",
        address=Address("Seoul"),
        raw_x="126.97",
        raw_y="37.56",
        thumbnail_url=None,
        last_modified=modified,
    )


def page_of(ids, total, page_no=1):
    return TourPage(items=[make_item(i) for i in ids], total_count=total, page_no=page_no, num_of_rows=len(ids))


class ScriptedFetch:
    """Returns pages from a dict keyed by (area_code, page_no); records calls."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def __call__(self, context, page_no, page_size):
        self.calls.append((context, page_no, page_size))
        await asyncio.sleep(0)
        result = self.pages[(context.area_code, page_no)]
        if isinstance(result, Exception):
            raise result
        return result


class GatedFetch:
    """Each call blocks until the test releases it."""

    def __init__(self):
        self.calls = []
        self.waiters = []

    async def __call__(self, context, page_no, page_size):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((context, page_no))
        self.waiters.append(future)
        return await future


def test_first_page_loads_and_sets_total():
    fetch = ScriptedFetch({("1", 1): page_of(["a", "b"], total=4)})
    controller = PaginationController(fetch, page_size=2)

    snap = asyncio.run(controller.reset(FilterContext(area_code="1")))

    assert snap.state is PageState.READY
    assert [i.id for i in snap.items] == ["a", "b"]
    assert snap.total_count == 4
    assert snap.current_page == 1
    assert not snap.exhausted
    assert fetch.calls[0][1:] == (1, 2)


def test_load_next_appends_and_exhausts_by_total():
    fetch = ScriptedFetch(
        {
            ("1", 1): page_of(["a", "b"], total=3),
            ("1", 2): page_of(["c"], total=3, page_no=2),
        }
    )
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        await controller.reset(FilterContext(area_code="1"))
        return await controller.load_next()

    snap = asyncio.run(scenario())

    assert [i.id for i in snap.items] == ["a", "b", "c"]
    assert snap.current_page == 2
    assert snap.exhausted
    assert not snap.has_more


def test_load_next_after_exhaustion_is_a_no_op():
    fetch = ScriptedFetch({("1", 1): page_of(["a"], total=1)})
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        await controller.reset(FilterContext(area_code="1"))
        return await controller.load_next()

    snap = asyncio.run(scenario())

    assert snap.exhausted
    assert len(fetch.calls) == 1


def test_empty_page_exhausts_even_below_total():
    fetch = ScriptedFetch(
        {
            ("1", 1): page_of(["a", "b"], total=10),
            ("1", 2): page_of([], total=10, page_no=2),
        }
    )
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        await controller.reset(FilterContext(area_code="1"))
        return await controller.load_next()

    snap = asyncio.run(scenario())

    assert snap.exhausted
    assert [i.id for i in snap.items] == ["a", "b"]


def test_duplicate_ids_across_pages_are_merged_once():
    fetch = ScriptedFetch(
        {
            ("1", 1): page_of(["a", "b"], total=4),
            ("1", 2): page_of(["b", "c"], total=4, page_no=2),
        }
    )
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        await controller.reset(FilterContext(area_code="1"))
        return await controller.load_next()

    snap = asyncio.run(scenario())

    assert [i.id for i in snap.items] == ["a", "b", "c"]


def test_concurrent_load_next_issues_one_request():
    fetch = GatedFetch()
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        first = asyncio.create_task(controller.reset(FilterContext(area_code="1")))
        await asyncio.sleep(0)
        fetch.waiters[0].set_result(page_of(["a", "b"], total=10))
        await first

        t1 = asyncio.create_task(controller.load_next())
        t2 = asyncio.create_task(controller.load_next())
        await asyncio.sleep(0)
        assert len(fetch.calls) == 2
        assert controller.snapshot().in_flight
        fetch.waiters[1].set_result(page_of(["c", "d"], total=10, page_no=2))
        await asyncio.gather(t1, t2)
        return controller.snapshot()

    snap = asyncio.run(scenario())

    assert len(fetch.calls) == 2
    assert [c[1] for c in fetch.calls] == [1, 2]
    assert [i.id for i in snap.items] == ["a", "b", "c", "d"]
    assert not snap.in_flight


def test_stale_response_after_filter_change_is_discarded():
    fetch = GatedFetch()
    controller = PaginationController(fetch, page_size=2)
    context_a = FilterContext(area_code="1")
    context_b = FilterContext(area_code="6")

    async def scenario():
        task_a = asyncio.create_task(controller.reset(context_a))
        await asyncio.sleep(0)
        task_b = asyncio.create_task(controller.reset(context_b))
        await asyncio.sleep(0)
        fetch.waiters[1].set_result(page_of(["b1"], total=1))
        await task_b
        # Context A answers last; it must not leak into B.
        fetch.waiters[0].set_result(page_of(["a1", "a2"], total=2))
        await task_a
        return controller.snapshot()

    snap = asyncio.run(scenario())

    assert snap.context == context_b
    assert [i.id for i in snap.items] == ["b1"]


def test_failure_keeps_items_and_stops_auto_loading():
    error = TransportError("down", attempts=4)
    fetch = ScriptedFetch(
        {
            ("1", 1): page_of(["a", "b"], total=10),
            ("1", 2): error,
        }
    )
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        await controller.reset(FilterContext(area_code="1"))
        failed = await controller.load_next()
        again = await controller.load_next()
        return failed, again

    failed, again = asyncio.run(scenario())

    assert failed.state is PageState.FAILED
    assert failed.exhausted
    assert failed.error is error
    assert failed.can_retry
    assert failed.error_text
    assert [i.id for i in failed.items] == ["a", "b"]
    assert len(fetch.calls) == 2
    assert again.state is PageState.FAILED


def test_first_page_failure_is_exhausted_and_empty():
    fetch = ScriptedFetch({("1", 1): TransportError("down", attempts=4)})
    controller = PaginationController(fetch)

    snap = asyncio.run(controller.reset(FilterContext(area_code="1")))

    assert snap.state is PageState.FAILED
    assert snap.exhausted
    assert snap.items == ()


def test_retry_refetches_failed_page():
    fetch = ScriptedFetch(
        {
            ("1", 1): page_of(["a", "b"], total=4),
            ("1", 2): TransportError("down", attempts=4),
        }
    )
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        await controller.reset(FilterContext(area_code="1"))
        await controller.load_next()
        fetch.pages[("1", 2)] = page_of(["c", "d"], total=4, page_no=2)
        return await controller.retry()

    snap = asyncio.run(scenario())

    assert snap.state is PageState.READY
    assert [i.id for i in snap.items] == ["a", "b", "c", "d"]
    assert snap.exhausted
    assert [c[1] for c in fetch.calls] == [1, 2, 2]


def test_retry_ignored_for_non_retryable_error():
    fetch = ScriptedFetch({("1", 1): ApiError("bad key", code="30")})
    controller = PaginationController(fetch)

    async def scenario():
        await controller.reset(FilterContext(area_code="1"))
        return await controller.retry()

    snap = asyncio.run(scenario())

    assert snap.state is PageState.FAILED
    assert not snap.can_retry
    assert len(fetch.calls) == 1


def test_each_page_is_sorted_before_append():
    page1 = TourPage(
        items=[make_item("old", modified="20200101000000"), make_item("new", modified="20240101000000")],
        total_count=4,
        page_no=1,
        num_of_rows=2,
    )
    page2 = TourPage(
        items=[make_item("older", modified="20190101000000"), make_item("newest", modified="20250101000000")],
        total_count=4,
        page_no=2,
        num_of_rows=2,
    )
    fetch = ScriptedFetch({("1", 1): page1, ("1", 2): page2})
    controller = PaginationController(fetch, page_size=2)

    async def scenario():
        await controller.reset(FilterContext(area_code="1", sort_order=SortOrder.RECENT))
        return await controller.load_next()

    snap = asyncio.run(scenario())

    # Sorted within each page only.
    assert [i.id for i in snap.items] == ["new", "old", "newest", "older"]


def test_listeners_see_loading_then_ready():
    fetch = ScriptedFetch({("1", 1): page_of(["a"], total=1)})
    controller = PaginationController(fetch)
    seen = []
    unsubscribe = controller.subscribe(lambda snap: seen.append((snap.state, snap.in_flight)))

    asyncio.run(controller.reset(FilterContext(area_code="1")))
    unsubscribe()
    asyncio.run(controller.reset(FilterContext(area_code="1")))

    assert seen == [(PageState.LOADING, True), (PageState.READY, False)]


def test_close_drops_session():
    fetch = ScriptedFetch({("1", 1): page_of(["a"], total=1)})
    controller = PaginationController(fetch)

    asyncio.run(controller.reset(FilterContext(area_code="1")))
    controller.close()

    snap = controller.snapshot()
    assert snap.items == ()
    assert snap.context is None


def test_each_reset_starts_a_new_generation():
    fetch = ScriptedFetch({("1", 1): page_of(["a"], total=1)})
    controller = PaginationController(fetch)
    context = FilterContext(area_code="1")

    first = asyncio.run(controller.reset(context))
    second = asyncio.run(controller.reset(context))

    assert first.context == second.context
    assert second.generation == first.generation + 1
