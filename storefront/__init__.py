# --- storefront/__init__.py ---
import logging

from flask import Flask

from .config import Config
from .extensions import db, cors, migrate


def create_app(config_object=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    config_object.init_app(app)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Init extensions
    db.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}}, expose_headers=["X-Cart-Id"])
    migrate.init_app(app, db)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)

    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        from .utils.api import ok
        return ok("API running", {"ok": True})

    with app.app_context():
        from . import model  # noqa: F401  (register tables)
        db.create_all()

        from .services.cart_store import CartStore
        app.extensions["cart_store"] = CartStore.from_config(db.session, app.config)

    return app
