"""
Goal Tracker - goal lifecycle reminders for Microsoft Teams.

Provides:
- Reminder scheduling for personal and team goals
- Goal cycle closure with note and alignment cascade
- Proactive notification delivery with team fan-out
- Background task queue and soft-delete sweeping
"""

__version__ = "1.0.0"
