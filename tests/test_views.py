import pytest
from anidojo.models import ListEntry, Review, ViewConfig
from anidojo.views import (
    list_view, review_view, tab_counts, progress_percent, toggle_selection, select_all, UnknownSortKey,
)

def e(anime_id, status="watching", **kw):
    kw.setdefault("title", f"Title {anime_id}")
    return ListEntry(anime_id=anime_id, watch_status=status, **kw)

def ids(items):
    return [x.anime_id for x in items]

def test_tab_filter_preserves_source_order():
    entries = [e(1, "completed", user_score=5), e(2, "watching"), e(3, "completed", user_score=5)]
    out = list_view(entries, ViewConfig("completed", "", "score-high"))
    assert ids(out) == [1, 3]

def test_all_tab_passes_everything():
    entries = [e(1, "dropped"), e(2, "on-hold")]
    assert len(list_view(entries, ViewConfig("all", "", "title-asc"))) == 2

@pytest.mark.parametrize("query, expected", [
    ("naruto", [1]),
    ("SHIPPUDEN", [1]),
    ("rewatch", [2]),
    ("comfy", [3]),
    ("zzz", []),
])
def test_search_matches_any_field(query, expected):
    entries = [
        e(1, title="Naruto", title_english="Naruto Shippuden"),
        e(2, title="Mushishi", notes="Rewatch in winter"),
        e(3, title="Yuru Camp", tags=["Comfy"]),
    ]
    assert ids(list_view(entries, ViewConfig(search_query=query))) == expected

def test_title_sort_prefers_english_title():
    entries = [e(1, title="Shingeki no Kyojin", title_english="Attack on Titan"), e(2, title="Bocchi"),
               e(3, title="aria")]
    assert ids(list_view(entries, ViewConfig(sort_key="title-asc"))) == [3, 1, 2]
    assert ids(list_view(entries, ViewConfig(sort_key="title-desc"))) == [2, 1, 3]

def test_score_sort_is_stable_and_missing_is_lowest():
    entries = [e(1, user_score=7), e(2), e(3, user_score=9), e(4, user_score=7)]
    assert ids(list_view(entries, ViewConfig(sort_key="score-high"))) == [3, 1, 4, 2]
    assert ids(list_view(entries, ViewConfig(sort_key="score-low"))) == [2, 1, 4, 3]

def test_date_sorts_most_recent_first():
    entries = [
        e(1, date_added="2024-01-01T00:00:00+00:00", last_updated="2024-03-01T00:00:00+00:00"),
        e(2, date_added="2024-02-01T00:00:00+00:00", last_updated="2024-02-15T00:00:00+00:00"),
    ]
    assert ids(list_view(entries, ViewConfig(sort_key="date-added"))) == [2, 1]
    assert ids(list_view(entries, ViewConfig(sort_key="last-updated"))) == [1, 2]

def test_progress_sort_treats_unknown_total_as_zero():
    entries = [e(1, episodes_watched=50), e(2, total_episodes=10, episodes_watched=5),
               e(3, total_episodes=4, episodes_watched=4)]
    assert ids(list_view(entries, ViewConfig(sort_key="progress"))) == [3, 2, 1]
    assert [progress_percent(x) for x in entries] == [0, 50, 100]

def test_view_does_not_touch_input():
    entries = [e(2), e(1)]
    list_view(entries, ViewConfig(sort_key="title-asc"))
    assert ids(entries) == [2, 1]

def test_unknown_sort_key():
    with pytest.raises(UnknownSortKey):
        list_view([e(1)], ViewConfig(sort_key="popularity"))

def test_review_view_tabs_search_and_sort():
    reviews = [
        Review(anime_id=1, id="a", title="Masterpiece", body="...", lifecycle_status="published",
               overall_rating=5, helpful_votes=1, updated_at="2024-01-01T00:00:00+00:00"),
        Review(anime_id=2, id="b", title="Meh", body="overhyped", lifecycle_status="draft",
               overall_rating=2, helpful_votes=4, updated_at="2024-02-01T00:00:00+00:00"),
        Review(anime_id=3, id="c", title="Solid", body="...", lifecycle_status="published",
               overall_rating=4, helpful_votes=4, anime_title="Vinland Saga", updated_at="2024-03-01T00:00:00+00:00"),
    ]
    rid = lambda rs: [r.id for r in rs]
    assert rid(review_view(reviews, ViewConfig("published", "", "newest"))) == ["c", "a"]
    assert rid(review_view(reviews, ViewConfig("draft", "", "newest"))) == ["b"]
    assert rid(review_view(reviews, ViewConfig("all", "vinland", "newest"))) == ["c"]
    assert rid(review_view(reviews, ViewConfig("all", "", "oldest"))) == ["a", "b", "c"]
    assert rid(review_view(reviews, ViewConfig("all", "", "most-helpful"))) == ["b", "c", "a"]
    assert rid(review_view(reviews, ViewConfig("all", "", "lowest-rated"))) == ["b", "c", "a"]

def test_tab_counts():
    counts = tab_counts([e(1, "completed"), e(2, "completed"), e(3, "plan-to-watch")])
    assert counts["all"] == 3 and counts["completed"] == 2 and counts["dropped"] == 0

def test_selection_helpers():
    assert toggle_selection([1, 2], 2) == [1]
    assert toggle_selection([1], 3) == [1, 3]
    assert select_all([1], [1, 2, 3]) == [1, 2, 3]
    assert select_all([3, 2, 1], [1, 2, 3]) == []

def test_title_sort_uses_locale_collation(monkeypatch):
    import anidojo.views as views_module
    # a collation that orders strings back to front
    monkeypatch.setattr(views_module.locale, "strxfrm", lambda s: s[::-1])
    entries = [e(1, title="ab"), e(2, title="ba")]
    assert ids(list_view(entries, ViewConfig(sort_key="title-asc"))) == [2, 1]
