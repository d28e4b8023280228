"""
Bill Split Ledger - Source Package

A two-party bill-splitting calculator. Each party keeps a list of
expense items; the ledger sums both sides and works out who owes whom
so that costs end up split evenly.

DESIGN PRINCIPLES:
1. Local edits are never lost
2. The remote store is a backup, not a second owner
3. Offline operation must never block the user
4. Every remote call is bounded and retried a couple of times, no more
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Bill Split Ledger Team"
