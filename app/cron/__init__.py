"""
Scheduled-task endpoints, authenticated with the shared CRON_SECRET rather
than a user session.
"""

from flask import Blueprint

bp = Blueprint('cron', __name__)

from app.cron import routes
