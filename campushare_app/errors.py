# campushare_app/errors.py
# -*- coding: utf-8 -*-
"""
Error taxonomy shared by the services and the JSON API.

Every error carries an HTTP status and a client-safe message. Anything that is
not a ``CampusShareError`` is logged and answered with a generic 500.
"""
from __future__ import annotations
from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge


class CampusShareError(Exception):
    status_code = 500
    message = "Something went wrong. Please try again later"

    def __init__(self, message: str | None = None, **extra):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, **self.extra}


class InvalidRequest(CampusShareError):
    status_code = 400
    message = "Validation failed"


class Unauthorized(CampusShareError):
    status_code = 401
    message = "Please login to continue"


class Forbidden(CampusShareError):
    status_code = 403
    message = "You do not have permission to perform this action"


class NotFound(CampusShareError):
    status_code = 404
    message = "Not found"


class Conflict(CampusShareError):
    status_code = 409
    message = "Already exists"


class OverQuota(CampusShareError):
    """Reservation refused. Expected outcome, never retried automatically."""
    status_code = 400
    message = "Storage limit exceeded. Please delete some files"

    def __init__(self, used: int, limit: int, required: int):
        super().__init__(storageUsed=used, storageLimit=limit, required=required)
        self.used = used
        self.limit = limit
        self.required = required


class ClipLimitReached(CampusShareError):
    status_code = 400
    message = "Maximum clipboard limit reached"


class PayloadIOError(CampusShareError):
    """Physical write failed; metadata and partial payload were rolled back."""
    status_code = 503
    message = "File upload failed. Please try again"


def register_error_handlers(app):
    @app.errorhandler(CampusShareError)
    def _campus_share_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(e):
        return jsonify({"success": False, "message": "File size exceeds the maximum allowed limit"}), 400

    @app.errorhandler(HTTPException)
    def _http_error(e):
        return jsonify({"success": False, "message": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def _unexpected(e):
        current_app.logger.exception("Unhandled error")
        return jsonify({"success": False, "message": CampusShareError.message}), 500
