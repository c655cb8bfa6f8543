"""Privacy-preserving YouTube embed proxy with a canned-response chat assistant."""

__version__ = "1.0.0"
