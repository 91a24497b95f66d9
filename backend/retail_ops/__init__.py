# backend/retail_ops/__init__.py
from flask import Flask, request
from sqlalchemy.engine import make_url

from .config import Config
from .extensions import db, datastore
from .services.local_store import resolve_database_path


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Local Store location: explicit URI wins, otherwise the resolved file
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        db_path = resolve_database_path(config=app.config)
        app.config["LOCAL_DB_PATH"] = db_path
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path}"
    elif not app.config.get("LOCAL_DB_PATH"):
        app.config["LOCAL_DB_PATH"] = make_url(app.config["SQLALCHEMY_DATABASE_URI"]).database

    # Initialize extensions
    db.init_app(app)
    datastore.init_app(app)

    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.wholesalers import wholesalers_bp
    from .routes.sales import sales_bp
    from .routes.audit import audit_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(wholesalers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(dashboard_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
