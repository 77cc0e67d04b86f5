"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/unit/ - Fast, isolated tests of the store, uploader, config, logging and CLI
- tests/integration/ - Online backup under lock contention and end-to-end backup runs
- tests/conftest.py - Shared fixtures, including the in-process fake FTP server

The FTP endpoint is simulated in-process; backoff delays are recorded rather
than slept, so the suite needs no network services.
"""
