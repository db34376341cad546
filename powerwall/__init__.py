"""
Client for the local-network API of Tesla Powerwall gateways.

The API is undocumented; everything here was reverse-engineered and may be
incomplete or change with gateway firmware updates.
"""

__version__ = "0.1.0"
