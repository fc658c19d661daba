"""
Caisse Kernel

Domain value objects, clock, typed exceptions and structured logging for
the savings-fund settlement engine:
- Decimal-only amounts
- Day-granularity calendar arithmetic
- Injected time, never read implicitly
"""

__version__ = "0.1.0"
