"""
Split Ledger - Source Package

The split-expense and debt ledger engine of a personal-finance tracker.
One shared expense fans out into independent per-participant debts which
are kept consistent with the expense across a remote, non-transactional store.

DESIGN PRINCIPLES:
1. Validate everything before the first write
2. A failed participant never sinks the whole expense
3. Report exactly what succeeded and what failed
4. Never retry behind the caller's back
5. Identity is passed in, never looked up
6. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Split Ledger Team"
