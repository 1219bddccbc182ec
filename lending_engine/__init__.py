"""
Lending Engine

Loan amortization, reverse rate solving and payment allocation for a
peer-lending platform, with Decimal money math throughout.
"""

__version__ = "1.0.0"
