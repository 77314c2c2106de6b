"""Fast local checkers (the first diagnostic tier)."""
