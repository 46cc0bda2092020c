"""Mirror GitHub releases into a Discord channel."""

__version__ = "0.1.0"
