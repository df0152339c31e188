"""
WSGI entry point for the Content Operations Dashboard.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi seed-workflow-templates <project_id>
    flask --app wsgi auto-generate-topics     # daily cron
"""

from app import create_app

app = create_app()
