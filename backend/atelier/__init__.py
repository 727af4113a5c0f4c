"""
Atelier measurement-order backend.

Pricing and replacement lifecycle for made-to-order tailoring orders.
"""

__version__ = "1.0.0"
