import json
import os
import logging
from flask import Flask
from anidojo.repo import SqliteRepo
from anidojo.catalog import JikanCatalog, DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from anidojo.service import DojoService
from anidojo.models import DEFAULT_USER_ID
from anidojo.web import register_routes, register_error_handlers

DEFAULT_CFG = {
    "database": "data/anidojo.db",
    "debug": True,
    "host": "127.0.0.1",
    "port": 5000,
    "logging_level": "INFO",
    "catalog_base_url": DEFAULT_BASE_URL,
    "catalog_timeout": DEFAULT_TIMEOUT,
    "user_id": DEFAULT_USER_ID,
    "search_history_limit": 10,
}

def load_config(path="config.json"):
    if not os.path.exists(path):
        print("config.json not found - using defaults:", DEFAULT_CFG)
        return DEFAULT_CFG.copy()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except (OSError, ValueError) as e:
        print("Failed to read config.json:", e, " - using defaults")
        return DEFAULT_CFG.copy()
    merged = DEFAULT_CFG.copy()
    merged.update(cfg)
    return merged

cfg = load_config()

def configure_logging(level_name: str):
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # quieter werkzeug / urllib3 when not debugging
    quiet = logging.WARNING if not cfg.get("debug") else logging.INFO
    logging.getLogger("werkzeug").setLevel(quiet)
    logging.getLogger("urllib3").setLevel(quiet)

def build_service(config=None) -> DojoService:
    config = config or cfg
    repo = SqliteRepo(config["database"])
    repo.ensure_schema()
    catalog = JikanCatalog(config.get("catalog_base_url", DEFAULT_BASE_URL),
                           timeout=config.get("catalog_timeout", DEFAULT_TIMEOUT))
    return DojoService(repo, catalog=catalog, user_id=config.get("user_id", DEFAULT_USER_ID),
                       search_history_limit=config.get("search_history_limit", 10))

def create_app(service=None):
    configure_logging(cfg.get("logging_level", "INFO"))
    logger = logging.getLogger(__name__)
    logger.info("Starting app with config: %s", {k: v for k, v in cfg.items() if k != "database"})

    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "dev-key")
    service = service or build_service(cfg)
    app.config["SERVICE"] = service

    register_routes(app, service)
    register_error_handlers(app)
    return app

if __name__ == "__main__":
    app = create_app()
    app.run(host=cfg.get("host", "127.0.0.1"), port=cfg.get("port", 5000), debug=cfg.get("debug", True))
