"""
Squares blueprint: claiming, unclaiming and clearing board squares.
"""

from flask import Blueprint

bp = Blueprint('squares', __name__)

from app.squares import routes
