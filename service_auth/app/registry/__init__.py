"""
Registration records, created implicitly on an identifier's first challenge.
"""
