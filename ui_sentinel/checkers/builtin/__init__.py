"""Built-in checkers. Every module here registers itself on import."""
