"""
Backup App - Snapshot and Ship

Responsibilities:
- Populate the SQLite store with synthetic people rows
- Take a transactionally consistent binary snapshot (online backup API)
- Upload the snapshot over FTP/FTPS with bounded retries and backoff
- Remove the temporary snapshot on every exit path
- Run once from the CLI or periodically via APScheduler

Output:
- <SQLITE_PREFIX>_<timestamp>.sqlite (local database)
- ftp://<host>:<port>/<FTP_REMOTE_DIR>/<SQLITE_PREFIX basename>_backup_<timestamp>.sqlite
"""
