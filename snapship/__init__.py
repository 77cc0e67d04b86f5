"""snapship - periodic SQLite snapshots shipped over FTP."""

__version__ = "0.1.0"
