"""
Shared helpers: text normalization, deadlines and cancellation.
"""
