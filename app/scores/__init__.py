"""
Scores blueprint: per-quarter score entry and removal.
"""

from flask import Blueprint

bp = Blueprint('scores', __name__)

from app.scores import routes
