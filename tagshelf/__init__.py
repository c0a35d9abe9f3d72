import logging

import click
from flask import Flask

from tagshelf.api import api_bp
from tagshelf.config import Config
from tagshelf.extensions import db, login_manager, migrate


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    logging.getLogger("tagshelf").setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized TagShelf database.")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.argument("password")
    @click.option("--admin", is_flag=True, default=False)
    def create_user_command(username, password, admin):
        from tagshelf.models import User

        if User.query.filter_by(username=username).first():
            raise click.ClickException(f"user {username!r} already exists")
        user = User(username=username, is_admin=admin, is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"Created user {username} (id={user.id}).")

    with app.app_context():
        db.create_all()

    return app
