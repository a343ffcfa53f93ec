"""
WSGI Entry Point for Gunicorn

Run with:
  gunicorn wsgi:app

The Flask application is created by create_app() in app_init.py.
"""

from app_init import create_app

app = create_app()
