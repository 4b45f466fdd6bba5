"""
Log rotation and level settings

Configures logging for the Flask app and the booking services, switching
the level automatically between development and production.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

# Loggers of the service layer (services.admission, services.store, ...)
SERVICE_LOGGERS = ('services', 'utils')


def setup_logging(app):
    """
    Configure logging

    Args:
        app (Flask): Flask app

    Note:
        - development (FLASK_ENV=development or DEBUG): DEBUG level
        - otherwise: INFO level
        - rotation: 10MB x 5 backups in {LOG_DIR}/error.log
        - audit lines (bookings/cancellations/staff actions) at INFO
        - LOG_TO_FILE=False skips the file handler (tests)

    Example:
        >>> app = Flask(__name__)
        >>> setup_logging(app)
        >>> app.logger.info("User 123 booked schedule 50")
    """
    if app.config.get('DEBUG') or os.environ.get('FLASK_ENV') == 'development':
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    handlers = []
    log_file = None
    if app.config.get('LOG_TO_FILE', True):
        log_dir = app.config.get('LOG_DIR', 'logs')
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, 'error.log')

        # Rolls over to error.log.1, error.log.2... past 10MB
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    for logger in [app.logger] + [logging.getLogger(name) for name in SERVICE_LOGGERS]:
        for handler in handlers:
            logger.addHandler(handler)
        logger.setLevel(log_level)

    app.logger.info('=' * 50)
    app.logger.info('Gym Booking Service Starting')
    app.logger.info(f'Log level: {logging.getLevelName(log_level)}')
    app.logger.info(f'Log file: {log_file or "disabled"}')
    app.logger.info('=' * 50)


def log_api_call(app, endpoint, user_id, params=None):
    """
    API call audit line

    Args:
        app (Flask): Flask app
        endpoint (str): endpoint (e.g. "/book-class")
        user_id (str): caller
        params (dict, optional): extra parameters

    Example:
        >>> log_api_call(app, "/book-class", "user123", {"schedule_id": 50})
        # INFO - API Call: /book-class | User: user123 | Params: {...}
    """
    log_msg = f"API Call: {endpoint} | User: {user_id}"
    if params:
        log_msg += f" | Params: {params}"
    app.logger.info(log_msg)


def log_admin_action(app, action, admin_id, details=None):
    """
    Staff action audit line

    Example:
        >>> log_admin_action(app, "DELETE_SCHEDULE", "admin123", {"schedule_id": 50})
        # INFO - Admin Action: DELETE_SCHEDULE | Admin: admin123 | Details: {...}
    """
    log_msg = f"Admin Action: {action} | Admin: {admin_id}"
    if details:
        log_msg += f" | Details: {details}"
    app.logger.info(log_msg)
