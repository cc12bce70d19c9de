"""
Budget DSS - Source Package

A decision-support pipeline for monthly household budgeting: goal
scoring, AHP goal prioritization, debt repayment strategy, goal/debt
tradeoff and constrained budget allocation, committed as versioned
month states.

DESIGN PRINCIPLES:
1. The system proposes → The user applies → Finalize verifies
2. Fail early, fail visibly
3. No silent corrections
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget DSS Team"
