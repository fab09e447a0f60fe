"""
Companies House (UK company registry) source module.

Provides officer lists, officer appointment histories and company profiles
from the Companies House public data API. Requires an API key.
"""

__all__ = ["client", "metadata", "types"]
