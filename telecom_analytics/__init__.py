"""
Telecom Analytics Platform

Derived-metrics refresh pipeline and read API over telecom operational data.
"""

__version__ = "1.0.0"
