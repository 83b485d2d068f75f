import os
from flask import Flask, request, session, jsonify, current_app, has_request_context
from flask_babel import Babel, gettext as _
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
from .models import db, CircularRecipeError, UnitConversionError
from .schemas import first_error_message

DEFAULT_ERROR_MESSAGES = {
    400: "Requisição inválida",
    401: "Não autorizado",
    403: "Acesso negado",
    404: "Recurso não encontrado",
    405: "Método não permitido",
}


def get_locale():
    default_locale = current_app.config.get('BABEL_DEFAULT_LOCALE', 'pt_BR')
    if not has_request_context():
        return default_locale
    selected_locale = request.args.get('lang', session.get('lang', default_locale))
    if selected_locale not in current_app.config.get('BABEL_SUPPORTED_LOCALES', [default_locale]):
        return default_locale
    return selected_locale


def create_app(test_config=None):
    app = Flask(__name__)

    # Load configurations
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///candycost.db")
    app.config['SQLALCHEMY_DATABASE_URI'] = DATABASE_URL
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Secret key for the session cookie
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    app.config['CURRENCY_SYMBOL'] = os.getenv('CURRENCY_SYMBOL', 'R$')
    app.config['BUSINESS_NAME'] = os.getenv('BUSINESS_NAME', 'Minha Confeitaria')
    app.config['DEFAULT_MARGIN_PERCENTAGE'] = float(os.getenv('DEFAULT_MARGIN_PERCENTAGE', '60'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    app.config['BABEL_DEFAULT_LOCALE'] = 'pt_BR'
    app.config['BABEL_SUPPORTED_LOCALES'] = ['pt_BR']

    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max backup upload
    app.json.ensure_ascii = False

    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config['LOG_LEVEL'])

    Babel(app, locale_selector=get_locale)

    @app.before_request
    def before_request():
        """Capture language parameter and save to session for persistence across requests"""
        if 'lang' in request.args:
            session['lang'] = request.args.get('lang')

    register_error_handlers(app)

    # Initialize database
    db.init_app(app)

    # Register blueprints
    from .routes import (
        auth_blueprint, ingredients_blueprint, products_blueprint, fixed_costs_blueprint,
        price_history_blueprint, dashboard_blueprint, reports_blueprint, settings_blueprint,
        users_blueprint, admin_blueprint
    )
    app.register_blueprint(auth_blueprint)
    app.register_blueprint(ingredients_blueprint)
    app.register_blueprint(products_blueprint)
    app.register_blueprint(fixed_costs_blueprint)
    app.register_blueprint(price_history_blueprint)
    app.register_blueprint(dashboard_blueprint)
    app.register_blueprint(reports_blueprint)
    app.register_blueprint(settings_blueprint)
    app.register_blueprint(users_blueprint)
    app.register_blueprint(admin_blueprint)

    with app.app_context():
        db.create_all()

    return app


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        db.session.rollback()
        return jsonify({'message': first_error_message(error)}), 400

    @app.errorhandler(CircularRecipeError)
    def handle_circular_recipe(error):
        db.session.rollback()
        current_app.logger.warning("Rejected circular recipe: %s", error)
        return jsonify({
            'message': _("Receita circular detectada: %(cycle)s", cycle=str(error)),
            'cycle': error.cycle
        }), 400

    @app.errorhandler(UnitConversionError)
    def handle_unit_conversion(error):
        db.session.rollback()
        return jsonify({'message': str(error), 'details': error.details}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        description = error.description
        if description == type(error).description and error.code in DEFAULT_ERROR_MESSAGES:
            description = _(DEFAULT_ERROR_MESSAGES[error.code])
        return jsonify({'message': description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        from .routes.utils import log_audit
        db.session.rollback()
        current_app.logger.exception("Unexpected error on %s %s", request.method, request.path)
        log_audit("ERROR", "System", details=f"{request.method} {request.path}: {error}")
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.error("Failed to record error in audit log: %s", e)
        return jsonify({'message': _("Ocorreu um erro inesperado. Tente novamente mais tarde.")}), 500
