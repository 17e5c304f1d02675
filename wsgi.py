"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi purge-expired-invites
    flask --app wsgi purge-archived-workspaces
"""

from workhub import create_app

app = create_app()
