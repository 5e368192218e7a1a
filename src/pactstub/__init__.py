"""
pactstub

Stub server for consumer-driven contract testing: serves the responses
recorded in pact files so a consumer can run without its real provider.
"""

__version__ = '1.0.0'
