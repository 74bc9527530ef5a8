# Overview: Shared translation of domain errors into JSON responses.

from flask import current_app, jsonify

from ..errors import AssetHubError, error_body, http_status_for
from ..extensions import db


def error_response(exc: AssetHubError):
    db.session.rollback()
    return jsonify(error_body(exc)), http_status_for(exc)


def server_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "INTERNAL_ERROR", "message": "Internal server error"}), 500


def bad_request(message: str):
    return jsonify({"error": "INVALID_PAYLOAD", "message": message}), 400
