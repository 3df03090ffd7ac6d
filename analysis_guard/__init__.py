"""
Analysis Guard.

Protective layer in front of an expensive text-classification call: result
cache, per-caller rate limiting and monthly spend tracking on a shared
DynamoDB store.
"""

__version__ = '1.0.0'
