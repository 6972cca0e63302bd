import json
import pytest
from run import create_app
from anidojo.repo import SqliteRepo
from anidojo.service import DojoService
from anidojo.models import AnimeSummary
from anidojo.catalog import CatalogPage

BODY = "The animation is stunning and the soundtrack carries every emotional beat of the story. "

class StubCatalog:
    items = [
        AnimeSummary(id=21, title="One Piece", genres=("Action", "Adventure", "Fantasy"), score=8.7,
                     year=1999, media_type="TV", air_status="airing"),
        AnimeSummary(id=1535, title="Death Note", genres=("Mystery", "Supernatural", "Thriller"), score=8.6,
                     year=2006, media_type="TV", air_status="finished", total_episodes=37),
        AnimeSummary(id=4224, title="Toradora!", genres=("Comedy", "Drama", "Romance"), score=8.1,
                     year=2008, media_type="TV", air_status="finished", total_episodes=25),
    ]

    def get_by_id(self, anime_id):
        return next(a for a in self.items if a.id == anime_id)

    def search(self, query, page=1, limit=20):
        return CatalogPage([a for a in self.items if query.lower() in a.title.lower()], current_page=page)

    def discover(self, filters=None, limit=20):
        return CatalogPage(list(self.items))

@pytest.fixture
def client(tmp_path):
    db_file = tmp_path / "functional.sqlite"
    repo = SqliteRepo(str(db_file))
    repo.ensure_schema()
    svc = DojoService(repo, catalog=StubCatalog())
    app = create_app(service=svc)
    app.testing = True
    with app.test_client() as c:
        yield c, db_file

def test_full_tracking_flow(client):
    c, db_file = client
    # search, then add two results
    found = c.get("/search?q=death").get_json()["data"]
    assert found[0]["id"] == 1535
    assert c.post("/lists", json={"anime_id": 1535, "watch_status": "watching"}).status_code == 201
    assert c.post("/lists", json={"anime_id": 21}).status_code == 201

    # finish Death Note
    c.patch("/lists/1535", json={"episodes_watched": 37, "user_score": 9})
    entries = c.get("/lists?tab=completed").get_json()["entries"]
    assert [e["animeId"] for e in entries] == [1535]

    # review it
    saved = c.post("/anime/1535/review/draft", json={"title": "Cat and mouse"}).get_json()
    assert saved["review"]["status"] == "draft"
    published = c.post("/anime/1535/review/publish", json={
        "overall_rating": 5, "title": "Cat and mouse", "body": BODY * 2,
        "sub_ratings": {"story": 5, "sound": 4}}).get_json()["review"]
    assert published["id"] == saved["review"]["id"]
    assert published["storyRating"] == 5

    stats = c.get("/reviews/stats").get_json()
    assert stats["totalReviews"] == 1 and stats["drafts"] == 0

    list_stats = c.get("/lists/stats").get_json()
    assert list_stats["completed"] == 1 and list_stats["planToWatch"] == 1

    # state is on disk, not just in memory
    again = DojoService(SqliteRepo(str(db_file)))
    assert again.get_entry(1535).watch_status == "completed"
    assert again.review_for_anime(1535).overall_rating == 5

def test_bulk_delete_and_export_import(client):
    c, _ = client
    for anime_id in (21, 1535, 4224):
        c.post("/lists", json={"anime_id": anime_id})
    exported = json.loads(c.get("/lists/export").data.decode())
    assert len(exported) == 3
    removed = c.post("/lists/bulk-delete", json={"anime_ids": [21, 4224, 999]}).get_json()
    assert removed["removed"] == 2
    result = c.post("/lists/import", json=exported).get_json()
    assert result["created"] == 2
    assert len(result["errors"]) == 1
    assert len(c.get("/lists").get_json()["entries"]) == 3

def test_review_export_selected(client):
    c, _ = client
    ids = []
    for anime_id, title in ((21, "Long but worth it"), (4224, "Best romcom")):
        r = c.post(f"/anime/{anime_id}/review/publish",
                   json={"overall_rating": 4, "title": title, "body": BODY * 2}).get_json()
        ids.append(r["review"]["id"])
    resp = c.post("/reviews/export", json={"ids": [ids[1]]})
    rows = json.loads(resp.data.decode())
    assert [r["title"] for r in rows] == ["Best romcom"]
    assert c.post("/reviews/bulk-delete", json={"ids": ids}).get_json()["removed"] == 2

def test_mood_recommendations_flow(client):
    c, _ = client
    data = c.post("/recommendations", json={"moods": ["curious"], "filters": {"types": ["TV"]}}).get_json()
    assert data["topPick"]["id"] == 1535
    assert {r["id"] for r in data["recommendations"]} == {21, 4224}
    history = c.get("/recommendations/history").get_json()
    assert history[0]["moods"] == ["curious"]
    assert history[0]["filters"]["types"] == ["TV"]
