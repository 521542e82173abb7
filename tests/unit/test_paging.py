import pytest

from mediahub.core.paging import PagedResult, page_window


@pytest.mark.parametrize(
    "page,size,expected",
    [(1, 10, (0, 10)), (2, 10, (10, 10)), (5, 3, (12, 3)), (1, 1, (0, 1))],
)
def test_page_window(page, size, expected):
    assert page_window(page, size) == expected


def test_first_and_last_flags():
    r = PagedResult(items=[1, 2], total_count=2, page=1, page_size=10)
    assert r.is_first_page
    assert r.is_last_page
    assert r.total_pages == 1


def test_middle_page():
    r = PagedResult(items=list(range(10)), total_count=25, page=2, page_size=10)
    assert not r.is_first_page
    assert not r.is_last_page
    assert r.total_pages == 3


def test_exact_boundary_is_last_page():
    r = PagedResult(items=list(range(10)), total_count=20, page=2, page_size=10)
    assert r.is_last_page


def test_page_past_the_end_keeps_total():
    r = PagedResult(items=[], total_count=7, page=4, page_size=5)
    assert r.items == []
    assert r.total_count == 7
    assert r.is_last_page
    assert r.total_pages == 2


def test_empty_result():
    r = PagedResult(items=[], total_count=0, page=1, page_size=20)
    assert r.is_first_page and r.is_last_page
    assert r.total_pages == 0


def test_map_keeps_paging_metadata():
    r = PagedResult(items=[1, 2, 3], total_count=9, page=2, page_size=3).map(str)
    assert r.items == ["1", "2", "3"]
    assert (r.total_count, r.page, r.page_size) == (9, 2, 3)
