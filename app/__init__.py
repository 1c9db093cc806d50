import os

from flask import Flask, current_app
from supabase import create_client

from config.mark_tables import DEFAULT_MARK_TABLES_PATH, default_mark_tables, load_mark_tables

from .main.routes import main_bp


def create_app():
    app = Flask(__name__)

    supabase = create_client(
        os.environ["SUPABASE_URL"],
        os.environ["SUPABASE_SERVICE_KEY"],
    )
    app.config["SUPABASE"] = supabase
    app.config["SUPABASE_URL"] = os.environ["SUPABASE_URL"]

    mark_tables_path = os.environ.get("MARK_TABLES_FILE") or DEFAULT_MARK_TABLES_PATH
    try:
        app.config["MARK_TABLES"] = load_mark_tables(mark_tables_path)
    except (OSError, ValueError) as exc:
        app.logger.warning("Unable to load mark tables from %s: %s", mark_tables_path, exc)
        app.config["MARK_TABLES"] = default_mark_tables()

    app.register_blueprint(main_bp)

    return app


def get_supabase():
    return current_app.config["SUPABASE"]
