# storefront/errors.py
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from .extensions import db
from .pricing import PricingInputError
from .utils.api import err


class StorefrontError(Exception):
    status = 400

    def __init__(self, message, status=None, data=None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        self.data = data


class BadRequest(StorefrontError):
    status = 400


class NotFound(StorefrontError):
    status = 404


class Conflict(StorefrontError):
    status = 409


def register_error_handlers(app):
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(e):
        return err(e.message, e.status, e.data)

    @app.errorhandler(PricingInputError)
    def handle_pricing_input(e):
        db.session.rollback()
        return err(str(e), 400)

    @app.errorhandler(StaleDataError)
    def handle_stale_cart(e):
        db.session.rollback()
        app.logger.warning("concurrent cart update rejected: %s", e)
        return err("cart was modified concurrently, retry", 409)

    @app.errorhandler(HTTPException)
    def handle_http(e):
        return err(e.description or e.name, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        app.logger.exception("unhandled error")
        return err("internal server error", 500)
