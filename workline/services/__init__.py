"""
Workline Gateway Services

- Store Service - SQLite work items and event log
- Device Service - Serial discovery, link management, line protocol
- Gateway Service - Dispatch loop, event reconciliation, progress, status
"""
