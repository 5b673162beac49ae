from datetime import datetime, timedelta, timezone

import pytest

from newsdesk.schemas.models import CandidateItem, SourceType
from newsdesk.shared.filters import ArticleFilter

DAY_10 = datetime(2024, 5, 10, tzinfo=timezone.utc)


def _item(title: str, snippet: str = "", pub_date: datetime = DAY_10) -> CandidateItem:
    return CandidateItem(
        id="x",
        title=title,
        link=f"https://example.com/{abs(hash(title))}",
        pub_date=pub_date,
        source_name="Test",
        snippet=snippet,
    )


@pytest.fixture
def article_filter():
    return ArticleFilter(keywords=["car", "ev", "suv"], window_days=3)


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Dubai weather forecast for Eid", False),
        ("New EV SUV launched in Dubai", True),
        ("Every resident should read this", False),
        ("Car prices climb in Abu Dhabi", True),
    ],
)
def test_aggregator_keyword_match(article_filter, title, expected):
    assert article_filter.is_relevant(_item(title), SourceType.AGGREGATOR) is expected


def test_keyword_found_in_snippet(article_filter):
    item = _item("Weekend roundup", snippet="A new electric suv arrives")
    assert article_filter.is_relevant(item, SourceType.AGGREGATOR)


def test_direct_sources_pass_unfiltered(article_filter):
    assert article_filter.is_relevant(_item("Dubai weather forecast for Eid"), SourceType.DIRECT)


def test_cutoff_is_window_before_now(article_filter):
    assert article_filter.cutoff_for(DAY_10) == datetime(2024, 5, 7, tzinfo=timezone.utc)


def test_time_window_boundary(article_filter):
    cutoff = article_filter.cutoff_for(DAY_10)

    assert article_filter.within_window(datetime(2024, 5, 7, tzinfo=timezone.utc), cutoff)
    assert not article_filter.within_window(datetime(2024, 5, 6, tzinfo=timezone.utc), cutoff)
    assert not article_filter.within_window(cutoff - timedelta(seconds=1), cutoff)


def test_undated_item_never_passes_window(article_filter):
    cutoff = article_filter.cutoff_for(DAY_10)
    assert not article_filter.within_window(None, cutoff)


def test_apply_combines_keyword_and_window(article_filter):
    cutoff = article_filter.cutoff_for(DAY_10)
    items = [
        (_item("New EV SUV launched", pub_date=datetime(2024, 5, 8, tzinfo=timezone.utc)), SourceType.AGGREGATOR),
        (_item("Old EV story", pub_date=datetime(2024, 5, 1, tzinfo=timezone.utc)), SourceType.AGGREGATOR),
        (_item("Weather today", pub_date=datetime(2024, 5, 9, tzinfo=timezone.utc)), SourceType.AGGREGATOR),
        (_item("Dealer interview", pub_date=datetime(2024, 5, 9, tzinfo=timezone.utc)), SourceType.DIRECT),
    ]

    kept = article_filter.apply(items, cutoff)

    assert [item.title for item in kept] == ["New EV SUV launched", "Dealer interview"]


def test_empty_keyword_list_drops_all_aggregator_items():
    article_filter = ArticleFilter(keywords=[], window_days=3)
    assert not article_filter.is_relevant(_item("New EV SUV"), SourceType.AGGREGATOR)
