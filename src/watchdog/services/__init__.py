"""Watchdog services (panel I/O, overage tracking, escalation, polling loop).

- panel_client.py (server directory, resource snapshots, kill command)
- overage_tracker.py (per-instance over-limit state machine)
- escalation.py + notifier.py (webhook reports, kill + audit entry)
- poll_scheduler.py (background batched polling loop)
"""
