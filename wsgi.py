"""
WSGI and Flask-Migrate / Alembic entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi db migrate -m "description"
"""

from fcpm import create_app

app = create_app()
