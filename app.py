"""
Flask main application

JSON API server of the gym class booking service.
"""

import click
from flask import Flask
from werkzeug.exceptions import HTTPException

from config import config
from services.credit_resolver import backfill_categories
from services.schedule_generator import ScheduleGenerator
from services.store import BookingStore
from utils.auth import issue_token
from utils.date_utils import parse_date
from utils.db import create_connection_pool
from utils.logging_setup import setup_logging
from utils.responses import error
import utils.db as db_module
import os


def create_app(config_name=None, store=None):
    """
    Flask app factory

    Args:
        config_name (str): 'development', 'production' or 'testing'
        store (BookingStore): data store; when omitted the MySQL connection
            pool is initialized and a BookingStore is built on it

    Returns:
        Flask: configured app
    """
    app = Flask(__name__)

    # Load settings
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # Logging
    setup_logging(app)

    # Data store
    if store is None:
        try:
            db_module.connection_pool = create_connection_pool(app.config)
            app.logger.info("MySQL Connection Pool initialized")
        except Exception as e:
            app.logger.error(f"Failed to initialize Connection Pool: {e}")
            raise
        store = BookingStore()

    app.extensions['booking_store'] = store

    # Routes
    from routes import member_routes, admin_routes

    app.register_blueprint(member_routes.bp)
    app.register_blueprint(admin_routes.bp)

    app.logger.info("All routes registered")

    @app.route('/health')
    def health_check():
        """Server status"""
        return {
            "status": "healthy",
            "service": "gym-booking",
            "version": "1.0.0"
        }, 200

    @app.errorhandler(Exception)
    def handle_error(e):
        """
        Global error handler

        HTTP errors keep their status; anything else is logged with its
        traceback and answered with a uniform 500.
        """
        if isinstance(e, HTTPException):
            return error(e.description, e.code, e.name.upper().replace(' ', '_'))

        app.logger.error(f"Unhandled exception: {str(e)}", exc_info=True)
        return error("Server error. Please try again later.", 500, 'UNEXPECTED')

    register_commands(app)

    return app


def register_commands(app):
    """Flask CLI commands (flask --app wsgi <command>)"""

    @app.cli.command('generate-schedule')
    @click.argument('start_date')
    @click.argument('end_date')
    def generate_schedule_command(start_date, end_date):
        """Create schedule rows from the weekly rules (YYYY-MM-DD, inclusive)."""
        generator = ScheduleGenerator(
            app.extensions['booking_store'],
            default_duration=app.config['DEFAULT_CLASS_DURATION'],
            max_days=app.config['GENERATOR_MAX_DAYS'],
        )
        created = generator.generate(parse_date(start_date), parse_date(end_date))
        click.echo(f"{len(created)} new classes created.")

    @app.cli.command('backfill-categories')
    @click.option('--overwrite', is_flag=True, help='Re-resolve classes that already have a category.')
    def backfill_categories_command(overwrite):
        """Resolve class categories from the package class types."""
        with app.extensions['booking_store'].transaction() as tx:
            updated = backfill_categories(tx, overwrite=overwrite)
        for class_id, category in updated:
            click.echo(f"class {class_id} -> {category}")
        click.echo(f"{len(updated)} classes updated.")

    @app.cli.command('issue-token')
    @click.argument('user_id')
    def issue_token_command(user_id):
        """Print a bearer token for USER_ID (development)."""
        click.echo(issue_token(user_id, app.config['SECRET_KEY']))


if __name__ == '__main__':
    # Local development server only; production runs behind a WSGI server
    create_app().run(host='0.0.0.0', port=5000, debug=True)
