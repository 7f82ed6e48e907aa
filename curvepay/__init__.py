"""
CurvePay
Multi-hop payments and bonding-curve purchases for song tokens
"""

__version__ = "0.1.0"
