"""Backup snapshots: writing, scheduling, and browsing."""
