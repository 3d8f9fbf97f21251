# campushare_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import Flask
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .blueprints.admin import admin_bp
from .clock import utcnow
from .errors import register_error_handlers
from .extensions import db, bcrypt, migrate, init_extensions, register_cli
from .services.scheduler_service import SweepScheduler
from .blueprints.core import bp as core_bp
from .blueprints.auth import bp as auth_bp
from .blueprints.files import bp as files_bp
from .blueprints.folders import bp as folders_bp
from .blueprints.clipboard import bp as clipboard_bp

__version__ = "1.0.0"

_ENV_CONFIGS = {
    "testing": TestingConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
}

def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    if config_object is None:
        app_env = os.getenv("APP_ENV", "").lower()
        config_object = _ENV_CONFIGS.get(app_env, Config)
    app.config.from_object(config_object)
    app.config["APP_VERSION"] = __version__

    # Extensions (DB/Bcrypt/Migrate)
    init_extensions(app)
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)
    app.config["STARTED_AT"] = utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    # Blueprints
    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(folders_bp)
    app.register_blueprint(clipboard_bp)
    app.register_blueprint(admin_bp)
    register_error_handlers(app)
    # CLI (e.g. flask init-db, flask sweep)
    register_cli(app)

    # Scheduler (expiry sweep, weekly orphan scan, daily stats)
    sched = SweepScheduler(app)
    app.extensions["sweep_scheduler"] = sched
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        sched.start()

    return app
