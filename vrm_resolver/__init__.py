"""
VRM Resolver - Vehicle Registration Lookup Engine

Turns a UK number plate into a normalized vehicle profile by querying the
registry and the specs/history provider in parallel, merging what they
return, and caching the raw payloads so a plate is paid for at most once
per freshness window.
"""

__version__ = "1.0.0"
