from flask import Flask
from .config import DevelopmentConfig, ProductionConfig, TestingConfig
from .extensions import db, migrate, jwt, ma
import os

CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

def create_app(config_name=None):
    app = Flask(__name__, instance_relative_config=False)
    env = config_name or os.getenv("FLASK_ENV", "development")
    app.config.from_object(CONFIGS.get(env, DevelopmentConfig))

    # initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    ma.init_app(app)

    # models must be imported before migrations or create_all can see them
    from gigmarket.models import user, gig, order, review  # noqa: F401

    # operator commands
    from gigmarket.commands import ratings_cli, orders_cli

    app.cli.add_command(ratings_cli)
    app.cli.add_command(orders_cli)

    return app
