import json
import pytest
from run import create_app
from anidojo.repo import InMemoryRepo
from anidojo.service import DojoService
from anidojo.models import AnimeSummary
from anidojo.catalog import CatalogPage, CatalogUnavailable

BODY = "An honest, warm, and funny show about growing up in a small town. " * 2

class StubCatalog:
    def __init__(self):
        self.down = False
        self.items = {
            7: AnimeSummary(id=7, title="Barakamon", genres=("Comedy", "Slice of Life"), score=8.3,
                            year=2014, media_type="TV", air_status="finished", total_episodes=12),
        }

    def _check(self):
        if self.down:
            raise CatalogUnavailable("catalog rate limit reached")

    def get_by_id(self, anime_id):
        self._check()
        return self.items[anime_id]

    def search(self, query, page=1, limit=20):
        self._check()
        return CatalogPage([a for a in self.items.values() if query.lower() in a.title.lower()],
                           has_next_page=False, current_page=page)

    def discover(self, filters=None, limit=20):
        self._check()
        return CatalogPage(list(self.items.values()))

@pytest.fixture
def api_client():
    """Flask test client backed by an in-memory repo and a stub catalog."""
    catalog = StubCatalog()
    svc = DojoService(InMemoryRepo(), catalog=catalog)
    app = create_app(service=svc)
    app.testing = True
    with app.test_client() as client:
        yield client, svc, catalog

def test_api_add_from_catalog_and_list(api_client):
    client, svc, _ = api_client
    resp = client.post("/lists", json={"anime_id": 7, "watch_status": "watching"})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["persisted"] is True
    assert body["result"]["title"] == "Barakamon"

    resp2 = client.get("/lists?tab=watching")
    data = resp2.get_json()
    assert [e["animeId"] for e in data["entries"]] == [7]
    assert data["counts"]["watching"] == 1

def test_api_duplicate_is_conflict(api_client):
    client, _, _ = api_client
    client.post("/lists", json={"anime_id": 7})
    resp = client.post("/lists", json={"anime_id": 7})
    assert resp.status_code == 409

def test_api_manual_entry_validation(api_client):
    client, _, _ = api_client
    resp = client.post("/lists", json={"anime_id": 1, "title": "Manual", "user_score": 12})
    assert resp.status_code == 400
    assert "user_score" in resp.get_json()["errors"]

def test_api_patch_increment_and_delete(api_client):
    client, _, _ = api_client
    client.post("/lists", json={"anime_id": 7, "watch_status": "watching", "episodes_watched": 10})
    resp = client.patch("/lists/7", json={"notes": "so wholesome"})
    assert resp.get_json()["result"]["notes"] == "so wholesome"
    for _ in range(3):
        resp = client.post("/lists/7/increment")
    entry = resp.get_json()["result"]
    assert entry["episodesWatched"] == 12 and entry["status"] == "completed"
    assert entry["progress"] == 100
    assert client.delete("/lists/7").get_json()["removed"] is True
    assert client.delete("/lists/7").get_json()["removed"] is False
    assert client.patch("/lists/7", json={"notes": "x"}).status_code == 404

def test_api_unknown_sort_key(api_client):
    client, _, _ = api_client
    assert client.get("/lists?sort=popularity").status_code == 400

def test_api_stats_and_export(api_client):
    client, _, _ = api_client
    client.post("/lists", json={"anime_id": 7, "user_score": 8})
    stats = client.get("/lists/stats").get_json()
    assert stats["totalAnime"] == 1 and stats["meanScore"] == 8
    resp = client.get("/lists/export")
    assert resp.mimetype == "application/json"
    rows = json.loads(resp.data.decode())
    assert rows[0]["animeId"] == 7

def test_api_review_publish_validation_and_success(api_client):
    client, _, _ = api_client
    bad = client.post("/anime/7/review/publish", json={"overall_rating": 4, "title": "", "body": "short"})
    assert bad.status_code == 400
    assert set(bad.get_json()["errors"]) == {"title", "body"}
    good = client.post("/anime/7/review/publish", json={"overall_rating": 4, "title": "Lovely", "body": BODY})
    assert good.status_code == 200
    review = good.get_json()["review"]
    assert review["status"] == "published"
    assert client.get("/anime/7/review").get_json()["id"] == review["id"]
    listed = client.get("/reviews?tab=published").get_json()["reviews"]
    assert [r["id"] for r in listed] == [review["id"]]

def test_api_missing_review_is_404(api_client):
    client, _, _ = api_client
    assert client.get("/anime/99/review").status_code == 404

def test_api_search_and_history(api_client):
    client, _, _ = api_client
    resp = client.get("/search?q=baraka")
    assert [a["id"] for a in resp.get_json()["data"]] == [7]
    assert client.get("/search/history").get_json() == ["baraka"]
    assert client.get("/search?q=").status_code == 400

def test_api_catalog_down_is_503(api_client):
    client, _, catalog = api_client
    catalog.down = True
    resp = client.get("/search?q=anything")
    assert resp.status_code == 503
    assert resp.get_json()["retry"] is True

def test_api_recommendations(api_client):
    client, _, _ = api_client
    assert client.post("/recommendations", json={"moods": []}).status_code == 400
    resp = client.post("/recommendations", json={"moods": ["relaxed"]})
    data = resp.get_json()
    assert data["topPick"]["id"] == 7
    assert data["topPick"]["matchPercentage"] > 0
    assert "relaxed" in data["topPick"]["explanation"]
    history = client.get("/recommendations/history").get_json()
    assert len(history) == 1
    named = client.post("/recommendations/history/name", json={"name": "chill"}).get_json()
    assert named["name"] == "chill"

def test_api_moods(api_client):
    client, _, _ = api_client
    ids = [m["id"] for m in client.get("/moods").get_json()]
    assert "excited" in ids and len(ids) == 6

def test_api_string_anime_id_is_coerced(api_client):
    client, svc, _ = api_client
    assert client.post("/lists", json={"anime_id": "7", "title": "Barakamon"}).status_code == 201
    assert client.post("/lists", json={"anime_id": 7, "title": "Barakamon"}).status_code == 409
    assert client.post("/lists", json={"anime_id": "seven", "title": "X"}).status_code == 400
    assert len(svc.list_entries()) == 1

def test_api_patch_with_wrong_type_is_400(api_client):
    client, svc, _ = api_client
    client.post("/lists", json={"anime_id": 7})
    resp = client.patch("/lists/7", json={"episodes_watched": "5"})
    assert resp.status_code == 400
    assert resp.get_json()["errors"]["episodes_watched"] == "must be an integer"
    assert svc.get_entry(7).episodes_watched == 0

def test_api_review_id_cannot_be_reused_for_another_anime(api_client):
    client, svc, _ = api_client
    first = client.post("/anime/7/review/draft", json={"title": "First"}).get_json()["review"]
    client.post("/anime/8/review/draft", json={"title": "Second"})
    resp = client.post("/anime/8/review/draft", json={"id": first["id"], "title": "Moved"})
    assert resp.status_code == 400
    assert svc.review_for_anime(7).id == first["id"]
    assert svc.review_for_anime(8).title == "Second"

def test_api_recommendations_report_persisted(api_client):
    client, _, _ = api_client
    data = client.post("/recommendations", json={"moods": ["relaxed"]}).get_json()
    assert data["persisted"] is True
