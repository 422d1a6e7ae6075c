"""
Pools blueprint: pool creation, settings, invites and the lifecycle
transitions (lock, unlock, randomize, un-randomize), plus the board, event log
and winners views.
"""

from flask import Blueprint

bp = Blueprint('pools', __name__)

from app.pools import routes
