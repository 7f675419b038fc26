"""
Smart Expense - Ledger Core

The computational core of a personal-finance tracker: recurring-rule
materialization, derived financial aggregation, and savings-goal funding.

DESIGN PRINCIPLES:
1. Engines are pure: snapshot + reference time in, results out
2. Persistence is somebody else's job (the Ledger Store)
3. One bad record never blocks the rest of the batch
4. Every state change the orchestrator makes is audited
5. No global state: configuration is passed in explicitly
"""

__version__ = "1.0.0"
__author__ = "Smart Expense Team"
