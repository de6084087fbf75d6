"""backupsync: cloud backup synchronization for a local SQLite snapshot."""

__version__ = "0.1.0"
