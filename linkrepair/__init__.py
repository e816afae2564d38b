"""Reference reporting and link repair for hierarchical content repositories."""

__version__ = "0.1.0"
