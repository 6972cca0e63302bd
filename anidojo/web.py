# anidojo/web.py
from flask import Blueprint, request, jsonify, current_app, Response
from anidojo.service import DojoService
from anidojo.stores import ValidationError, NotFoundError, DuplicateEntryError
from anidojo.recommend import MoodRequiredError, RecommendationFilters, MOODS
from anidojo.catalog import CatalogUnavailable
from anidojo.views import UnknownSortKey, progress_percent
from anidojo.models import ListEntry, Review
from dataclasses import fields
import json, logging

logger = logging.getLogger(__name__)

bp = Blueprint("main", __name__, url_prefix="")  # blueprint name = 'main'

def register_routes(app, service: DojoService):
    """
    Register blueprint and ensure SERVICE is in app.config.
    Call this once during app creation (run.create_app does this).
    """
    if "SERVICE" not in app.config:
        app.config["SERVICE"] = service
    app.register_blueprint(bp)
    logger.debug("Registered blueprint 'main' and injected SERVICE")

def _error(message: str, status: int, **extra):
    body = {"error": message}
    body.update(extra)
    return jsonify(body), status

def register_error_handlers(app):
    """Centralized handlers for service exceptions."""
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        logger.warning("ValidationError: %s", e)
        return _error(str(e), 400, errors=e.errors)

    @app.errorhandler(UnknownSortKey)
    def handle_sort_key(e):
        return _error(str(e), 400)

    @app.errorhandler(MoodRequiredError)
    def handle_mood_required(e):
        return _error(str(e), 400)

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        logger.info("NotFoundError: %s", e)
        return _error(str(e), 404)

    @app.errorhandler(DuplicateEntryError)
    def handle_duplicate(e):
        return _error(str(e), 409)

    @app.errorhandler(CatalogUnavailable)
    def handle_catalog(e):
        logger.warning("CatalogUnavailable: %s", e)
        return _error(str(e), 503, retry=True)

# helper to get service instance
def current_service() -> DojoService:
    return current_app.config["SERVICE"]

def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError({"body": "JSON object required"})
    return data

def _pick(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}

def _entry_json(e: ListEntry) -> dict:
    d = e.to_dict()
    d["progress"] = progress_percent(e)
    return d

def _mutation_json(result, value=None) -> dict:
    return {"result": value if value is not None else result.value, "persisted": result.persisted}

def _entry_response(result, status: int = 200):
    if not result.ok:
        return _error("validation failed", 400, errors=result.validation.errors)
    return jsonify(_mutation_json(result, _entry_json(result.value))), status

def _anime_id(value) -> int:
    if isinstance(value, bool):
        raise ValidationError({"anime_id": "must be an integer"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({"anime_id": "must be an integer"})

# -----------------------
# List
# -----------------------
@bp.route("/lists")
def list_entries():
    svc = current_service()
    entries = svc.list_entries(tab=request.args.get("tab", "all"), q=request.args.get("q", ""),
                               sort=request.args.get("sort", "title-asc"))
    return jsonify({"entries": [_entry_json(e) for e in entries], "counts": svc.tab_counts()})

@bp.route("/lists", methods=["POST"])
def list_add():
    svc = current_service()
    data = _body()
    if "anime_id" not in data:
        raise ValidationError({"anime_id": "required"})
    anime_id = _anime_id(data["anime_id"])
    if "title" not in data:
        result = svc.add_from_catalog(anime_id, **_pick(ListEntry, {
            k: v for k, v in data.items() if k != "anime_id"}))
    else:
        result = svc.add_entry(ListEntry(**_pick(ListEntry, dict(data, anime_id=anime_id))))
    return _entry_response(result, 201)

@bp.route("/lists/<int:anime_id>", methods=["PATCH"])
def list_update(anime_id: int):
    return _entry_response(current_service().update_entry(anime_id, _body()))

@bp.route("/lists/<int:anime_id>/increment", methods=["POST"])
def list_increment(anime_id: int):
    return _entry_response(current_service().increment_episode(anime_id))

@bp.route("/lists/<int:anime_id>", methods=["DELETE"])
def list_delete(anime_id: int):
    result = current_service().remove_entry(anime_id)
    return jsonify({"removed": result.value, "persisted": result.persisted})

@bp.route("/lists/bulk-delete", methods=["POST"])
def list_bulk_delete():
    ids = _body().get("anime_ids") or []
    result = current_service().bulk_remove_entries(int(x) for x in ids)
    return jsonify({"removed": result.value, "persisted": result.persisted})

@bp.route("/lists/stats")
def list_stats():
    return jsonify(current_service().list_stats().to_dict())

@bp.route("/lists/export")
def list_export():
    rows = current_service().export_list()
    return Response(json.dumps(rows, ensure_ascii=False, indent=2), mimetype="application/json",
                    headers={"Content-Disposition": "attachment; filename=anime-list.json"})

@bp.route("/lists/import", methods=["POST"])
def list_import():
    rows = request.get_json(silent=True)
    if not isinstance(rows, list):
        raise ValidationError({"body": "JSON must be a list of objects"})
    created, errors = current_service().import_list_rows(rows)
    return jsonify({"created": created, "errors": errors})

# -----------------------
# Reviews
# -----------------------
def _review_from(data: dict, anime_id: int) -> Review:
    kwargs = _pick(Review, data)
    kwargs["anime_id"] = anime_id
    return Review(**kwargs)

def _save_response(result):
    if not result.ok:
        return _error("validation failed", 400, errors=result.validation.errors)
    return jsonify({"review": result.review.to_dict(), "persisted": result.persisted})

@bp.route("/reviews")
def reviews():
    svc = current_service()
    items = svc.my_reviews(tab=request.args.get("tab", "all"), q=request.args.get("q", ""),
                           sort=request.args.get("sort", "newest"))
    return jsonify({"reviews": [r.to_dict() for r in items]})

@bp.route("/anime/<int:anime_id>/review")
def review_for_anime(anime_id: int):
    r = current_service().review_for_anime(anime_id)
    if r is None:
        raise NotFoundError("review not found")
    return jsonify(r.to_dict())

@bp.route("/anime/<int:anime_id>/review/draft", methods=["POST"])
def review_draft(anime_id: int):
    return _save_response(current_service().save_review_draft(_review_from(_body(), anime_id)))

@bp.route("/anime/<int:anime_id>/review/publish", methods=["POST"])
def review_publish(anime_id: int):
    return _save_response(current_service().publish_review(_review_from(_body(), anime_id)))

@bp.route("/reviews/<review_id>", methods=["DELETE"])
def review_delete(review_id: str):
    result = current_service().delete_review(review_id)
    return jsonify({"removed": result.value, "persisted": result.persisted})

@bp.route("/reviews/bulk-delete", methods=["POST"])
def review_bulk_delete():
    result = current_service().bulk_delete_reviews(_body().get("ids") or [])
    return jsonify({"removed": result.value, "persisted": result.persisted})

@bp.route("/reviews/stats")
def review_stats():
    return jsonify(current_service().review_stats().to_dict())

@bp.route("/reviews/export", methods=["GET", "POST"])
def review_export():
    ids = None
    if request.method == "POST":
        ids = _body().get("ids")
    rows = current_service().export_reviews(ids)
    return Response(json.dumps(rows, ensure_ascii=False, indent=2), mimetype="application/json",
                    headers={"Content-Disposition": "attachment; filename=my-reviews.json"})

# -----------------------
# Search / recommendations
# -----------------------
@bp.route("/search")
def search():
    svc = current_service()
    q = request.args.get("q", "").strip()
    if not q:
        raise ValidationError({"q": "required"})
    page = svc.search_catalog(q, page=request.args.get("page", 1, type=int))
    if page is None:
        return jsonify({"stale": True}), 409
    return jsonify({"data": [a.to_dict() for a in page.items],
                    "pagination": {"has_next_page": page.has_next_page, "current_page": page.current_page}})

@bp.route("/search/history")
def search_history():
    return jsonify(current_service().search_history.all())

@bp.route("/search/history", methods=["DELETE"])
def search_history_clear():
    return jsonify({"cleared": current_service().search_history.clear()})

@bp.route("/moods")
def moods():
    return jsonify([{"id": m.id, "name": m.name, "genres": list(m.genres), "description": m.description}
                    for m in MOODS.values()])

@bp.route("/recommendations", methods=["POST"])
def recommendations():
    svc = current_service()
    data = _body()
    moods = data.get("moods") or []
    filters = RecommendationFilters.from_dict(data.get("filters"))
    recs = svc.recommend(moods, filters)
    def item(a):
        return dict(a.to_dict(), matchPercentage=recs.matches[a.id], explanation=svc.explain(a, moods))
    return jsonify({
        "topPick": item(recs.top_pick) if recs.top_pick else None,
        "recommendations": [item(a) for a in recs.ranked],
        "persisted": recs.persisted,
    })

@bp.route("/recommendations/history")
def recommendation_history():
    return jsonify(current_service().recommendation_history.all())

@bp.route("/recommendations/history/name", methods=["POST"])
def recommendation_name():
    named, persisted = current_service().recommendation_history.name_latest(_body().get("name", ""))
    if named is None:
        raise NotFoundError("no recommendation set to name")
    return jsonify(dict(named, persisted=persisted))
