"""
Business Manager - Source Package

Bookkeeping and scheduling for small businesses: one-off and weekly
jobs, other incomes and expenses, income reports, deadline reminders.

DESIGN PRINCIPLES:
1. The store is the only writer; everything else reads
2. Schedules, reports and reminders are pure functions of the data
3. Malformed input becomes a safe default, never a crash
4. Every mutation is auditable
5. Storage layer is swappable (remote database or guest file)
"""

__version__ = "1.0.0"
__author__ = "Business Manager Team"
