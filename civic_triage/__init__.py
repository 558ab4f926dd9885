"""Duplicate-complaint detection and urgency prioritization for civic reports"""

__version__ = "1.0.0"
