# backend/assethub/__init__.py
import os

from flask import Flask

from .config import Config
from .extensions import db, migrate

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")



def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.approvals import approvals_bp
    from .routes.assets import assets_bp
    from .routes.consumables import consumables_bp
    from .routes.inventory_tasks import inventory_tasks_bp
    from .routes.action_configs import action_configs_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(assets_bp)
    app.register_blueprint(consumables_bp)
    app.register_blueprint(inventory_tasks_bp)
    app.register_blueprint(action_configs_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
