"""
Game rules that need no database: digit randomization and winner resolution.
"""
