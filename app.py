import logging
import os

import click
from flask import Flask, render_template
from flask_cors import CORS

from api import api_bp
from auth import auth_bp, login_manager
from config import Config
from models import db
from oauth import oauth_bp
from views import views_bp

logger = logging.getLogger(__name__)


def configure_logging(level):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app.config['LOG_LEVEL'])

    # === Database ===
    db.init_app(app)
    with app.app_context():
        db.create_all()

    login_manager.init_app(app)

    # The mobile client calls the JSON API cross-origin
    CORS(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGINS']}},
         allow_headers=['Content-Type', 'X-User-Email'])

    app.register_blueprint(auth_bp)
    app.register_blueprint(oauth_bp)
    app.register_blueprint(views_bp)
    app.register_blueprint(api_bp)

    @app.template_filter('stars')
    def stars(rating):
        rating = rating or 0
        return '★' * rating + '☆' * (5 - rating)

    @app.template_filter('date')
    def format_date(value):
        return value.strftime('%b %d, %Y') if value else ''

    @app.errorhandler(404)
    def not_found(e):
        return render_template('error.html', code=404, message='Page not found'), 404

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        logger.error('Server error: %s', e)
        return render_template('error.html', code=500, message='Something went wrong'), 500

    @app.cli.command('init-db')
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo('Database initialised.')

    return app


if __name__ == '__main__':
    # Open to the local network so the mobile client can reach it
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=False)
