# campushare_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_migrate import Migrate
from sqlalchemy import text


db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()

def init_extensions(app):
    # DB/Bcrypt/Migrate
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)

def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Create the tables (DEV). In production use: flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            print("Tables created.")

    @app.cli.command("sweep")
    @click.option("--orphans/--no-orphans", default=False, help="Also remove payloads without metadata.")
    def sweep_cmd(orphans):
        """Run the expiry/reconciliation sweep now and print the report."""
        from .services.sweeper import run_sweep
        with app.app_context():
            report = run_sweep(orphan_scan=orphans)
            for key, value in report.to_dict().items():
                print(f"{key}: {value}")

    @app.cli.command("create-admin")
    @click.argument("username")
    @click.argument("email")
    @click.password_option()
    def create_admin_cmd(username, email, password):
        """Create (or promote) an administrator account."""
        from .models import User
        with app.app_context():
            u = User.query.filter_by(username=username.lower()).first()
            if not u:
                u = User(username=username.lower(), email=email.lower())
                db.session.add(u)
            u.set_password(password)
            u.is_admin = True
            db.session.commit()
            print(f"Admin {u.username} ready.")
