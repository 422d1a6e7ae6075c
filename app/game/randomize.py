"""
Board digit randomization.
"""

import secrets

DIGITS = tuple(range(10))


def generate_random_digits():
    """
    Return a uniformly random permutation of the digits 0-9.

    Fisher-Yates from the last index down, each swap index drawn from a
    cryptographically secure 32-bit value reduced modulo (i + 1).
    """
    digits = list(DIGITS)

    for i in range(len(digits) - 1, 0, -1):
        j = secrets.randbits(32) % (i + 1)
        digits[i], digits[j] = digits[j], digits[i]

    return digits


def generate_axis_digits():
    """Two independent permutations: (x digits for columns, y digits for rows)."""
    return generate_random_digits(), generate_random_digits()


def validate_digits(digits):
    """True only for a sequence holding each digit 0-9 exactly once."""
    if not isinstance(digits, (list, tuple)) or len(digits) != 10:
        return False

    seen = set()
    for digit in digits:
        if isinstance(digit, bool) or not isinstance(digit, int):
            return False
        if digit < 0 or digit > 9 or digit in seen:
            return False
        seen.add(digit)

    return True
