"""Build local charms referenced by a bundle and deploy the result."""

__version__ = "0.5.0"
