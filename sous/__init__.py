"""sous: a terminal chat agent with local file and shell tools."""

__version__ = "0.3.0"
