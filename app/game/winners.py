"""
Winner resolution.

Convention: the x axis (columns) carries the away team's digits, the y axis
(rows) the home team's. Everything here is a pure function of its inputs.
"""

from dataclasses import dataclass
from typing import Optional

from app.errors import UnresolvableDigitError

BUCKET_ORDER = {'Q1': 1, 'Q2': 2, 'Q3': 3, 'Q4': 4, 'FINAL': 5}


@dataclass(frozen=True)
class WinnerPosition:
    row: int
    col: int
    home_digit: int
    away_digit: int


@dataclass(frozen=True)
class Winner:
    bucket: str
    row: int
    col: int
    home_score: int
    away_score: int
    claimed_by_user_id: Optional[int] = None
    claimed_display_name: Optional[str] = None

    @property
    def is_claimed(self):
        return self.claimed_by_user_id is not None or self.claimed_display_name is not None

    def to_dict(self):
        return {
            'bucket': self.bucket,
            'row': self.row,
            'col': self.col,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'claimed_by_user_id': self.claimed_by_user_id,
            'claimed_display_name': self.claimed_display_name,
            'winner': self.claimed_display_name if self.is_claimed else 'unclaimed',
        }


def resolve(home_score, away_score, col_digits, row_digits):
    """
    Find the winning cell for one score.

    Raises UnresolvableDigitError when a last digit is missing from its axis,
    which only happens with a corrupt axis assignment.
    """
    home_digit = home_score % 10
    away_digit = away_score % 10

    try:
        col = list(col_digits).index(away_digit)
    except ValueError:
        raise UnresolvableDigitError(away_digit, 'column')

    try:
        row = list(row_digits).index(home_digit)
    except ValueError:
        raise UnresolvableDigitError(home_digit, 'row')

    return WinnerPosition(row=row, col=col, home_digit=home_digit, away_digit=away_digit)


def resolve_all(scores, col_digits, row_digits, claims):
    """
    One Winner per score entered.

    `scores` are objects with bucket/home_score/away_score; `claims` maps
    (row, col) to an object with claimed_by_user_id and claimed_display_name,
    or is any iterable of such square objects. A winning cell missing from
    `claims` is reported unclaimed.
    """
    if not isinstance(claims, dict):
        claims = {(square.row, square.col): square for square in claims}

    winners = []
    for score in scores:
        position = resolve(score.home_score, score.away_score, col_digits, row_digits)
        square = claims.get((position.row, position.col))
        winners.append(Winner(
            bucket=score.bucket,
            row=position.row,
            col=position.col,
            home_score=score.home_score,
            away_score=score.away_score,
            claimed_by_user_id=square.claimed_by_user_id if square else None,
            claimed_display_name=square.claimed_display_name if square else None,
        ))

    return winners


def sort_winners(winners):
    """Order winners Q1, Q2, Q3, Q4, FINAL."""
    return sorted(winners, key=lambda w: BUCKET_ORDER.get(w.bucket, len(BUCKET_ORDER) + 1))
