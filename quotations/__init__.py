"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from quotations.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis: price-list cache and cart events
    from quotations.services.cache_service import init_cache
    init_cache(app)

    from quotations.services.cart_notifier import init_cart_notifier
    init_cart_notifier(app)

    # Prometheus metrics instrumentation
    from quotations.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production' or app.config.get('FLASK_ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,
            x_proto=1,
            x_host=1,
            x_port=1,
            x_prefix=0
        )

    # Initialize database
    init_db(app)

    # Organization context for each request
    from quotations.middleware import load_organization

    @app.before_request
    def before_request_handler():
        """Load the calling organization from the request headers."""
        load_organization()

    # Error Handlers
    from quotations.exceptions import QuotationsError

    @app.errorhandler(QuotationsError)
    def handle_quotations_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"QuotationsError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"QuotationsError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException) and error.code and error.code < 500:
            return jsonify({'status': 'error', 'message': error.description}), error.code

        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from quotations.blueprints.carts import carts_bp
    from quotations.blueprints.price_lists import price_lists_bp
    from quotations.blueprints.payments import payments_bp
    from quotations.blueprints.products import products_bp
    from quotations.blueprints.organizations import organizations_bp
    from quotations.blueprints.payment_methods import payment_methods_bp
    from quotations.blueprints.customization import customization_groups_bp, customization_fields_bp
    from quotations.blueprints.metrics import metrics_bp

    app.register_blueprint(carts_bp)
    app.register_blueprint(price_lists_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(organizations_bp)
    app.register_blueprint(payment_methods_bp)
    app.register_blueprint(customization_groups_bp)
    app.register_blueprint(customization_fields_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from quotations.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
