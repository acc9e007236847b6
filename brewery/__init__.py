"""A lightweight, Python-based package manager for Homebrew bottles."""
from brewery.config import VERSION

__version__ = VERSION
