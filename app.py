import logging
import os

from flask import Flask, jsonify, request

from models import db

_LOGGING_CONFIGURED = False


def configure_logging(level='INFO'):
    """Attach one stream handler to the root logger; repeated calls are no-ops."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter('[%(asctime)s] [%(levelname)s] %(name)s - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
    )
    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)
    _LOGGING_CONFIGURED = True


def create_app(test_config=None):
    app = Flask(__name__, template_folder='templates', static_folder='static')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///finance.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if test_config:
        app.config.update(test_config)

    configure_logging(app.config['LOG_LEVEL'])
    db.init_app(app)

    from auth import bp as auth_bp
    from views import bp as views_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(views_bp)

    @app.errorhandler(404)
    def not_found(error):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'not found'}), 404
        return error

    with app.app_context():
        db.create_all()
    app.logger.info('App ready (database: %s)', app.config['SQLALCHEMY_DATABASE_URI'].split('://')[0])
    return app


# ---------------------- Run App ----------------------
if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
