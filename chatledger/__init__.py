"""
Chat Ledger - Source Package

A conversational personal-finance ledger. Users report money activity
in free-form chat (text, voice notes, receipt photos) and the system
turns it into ledger entries, budgets and savings-goal moves.

DESIGN PRINCIPLES:
1. The model translates, the ledger decides
2. Money is conserved: goal funds plus balance never drift
3. Fail visibly with an actionable reply
4. Every mutation is auditable
5. Storage and the understanding service are swappable
"""

__version__ = "0.1.0"
__author__ = "Chat Ledger Team"
