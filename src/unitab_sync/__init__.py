"""unitab-sync: tab group storage with GitHub Gist replication."""

__version__ = "0.3.0"
