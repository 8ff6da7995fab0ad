"""
Cohort Leveling

Placement engine for grade-wide class leveling: composite scoring of test,
classroom-grade and teacher-rating signals, percentile banding into ordered
sections, manual override reconciliation and one-way finalization against
an async PostgreSQL store.
"""

__version__ = "0.1.0"
