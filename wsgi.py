"""
Flask-Migrate / gunicorn entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

from fmea_smart import create_app

app = create_app()
