"""
Scheduling Domain

Clinic calendar: weekly default hours, date overrides and capacity plans,
resolved into per-day snapshots with a 30-minute slot grid.
"""
