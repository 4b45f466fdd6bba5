"""
WSGI entry point

Referenced by the WSGI server (gunicorn wsgi:application, or the hosting
panel's WSGI configuration file). Local development uses `python app.py`.
"""

import sys
import os

# Project path
path = os.path.dirname(os.path.abspath(__file__))
if path not in sys.path:
    sys.path.insert(0, path)

# Environment comes from .env (python-dotenv, loaded by config.py) or the
# server's environment variables
from app import create_app

# WSGI servers look for the name 'application'
application = create_app()
