import logging
from datetime import datetime, timezone
from typing import Optional

import requests
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from storefront.core.config import Config, load_config
from storefront.core.dependencies import build_container
from storefront.core.exceptions import BaseAPIException, DatabaseError
from storefront.models.session import SESSION_TOKEN_HEADER
from storefront.repositories.storage import ClientStorage
from storefront.routes import cart_bp, pricing_bp
from storefront.routes.utils import CONTAINER_KEY, incoming_user_token
from storefront.services.session_service import NEW_TOKEN_HEADER, TOKEN_REFRESHED_HEADER

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


def create_app(
    cfg: Optional[Config] = None,
    http_session: Optional[requests.Session] = None,
    storage: Optional[ClientStorage] = None
) -> Flask:
    """
    Application factory.

    Services are wired once per app; identity, cart store and the
    promotion cache are built per request from the caller's headers.
    """
    cfg = cfg or load_config()
    logging.basicConfig(level=cfg.app.log_level, format=LOG_FORMAT)

    app = Flask(__name__)
    app.config["DEBUG"] = cfg.app.debug
    app.extensions[CONTAINER_KEY] = build_container(cfg, http_session, storage)

    app.register_blueprint(cart_bp, url_prefix="/api/storefront")
    app.register_blueprint(pricing_bp, url_prefix="/api/storefront")

    @app.after_request
    def echo_identity(response):
        """Hand newly issued tokens back so the caller can persist them."""
        identity = g.get("identity")
        if identity is None:
            return response
        if identity.is_authenticated:
            if identity.user_token != incoming_user_token():
                response.headers[NEW_TOKEN_HEADER] = identity.user_token
                response.headers[TOKEN_REFRESHED_HEADER] = "true"
        elif identity.session_token and identity.session_token != request.headers.get(SESSION_TOKEN_HEADER):
            response.headers[SESSION_TOKEN_HEADER] = identity.session_token
        return response

    @app.errorhandler(BaseAPIException)
    def api_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.error_code}: {e.internal_message}")
        else:
            logger.warning(f"{e.error_code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({
            "success": False,
            "error": {"code": e.name.upper().replace(" ", "_"), "message": str(e.description), "details": {}},
        }), e.code

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({
            "success": False,
            "error": {"code": "INTERNAL_ERROR", "message": "An internal server error occurred.", "details": {}},
        }), 500

    @app.get("/health")
    def health():
        """Liveness + readiness probe. Returns 503 if client storage is unreachable."""
        container = app.extensions[CONTAINER_KEY]
        try:
            container.get(ClientStorage).get("health")
        except DatabaseError as exc:
            return jsonify({"status": "error", "storage": exc.internal_message}), 503
        return jsonify({
            "status": "ok",
            "storage": "reachable",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 200

    return app


def main() -> None:
    cfg = load_config()
    application = create_app(cfg)
    application.run(debug=cfg.app.debug, host=cfg.app.host, port=cfg.app.port)


if __name__ == "__main__":
    main()
