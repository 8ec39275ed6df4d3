"""
Challenge package.

- store: Challenge record and the in-memory / Redis storage backends.
- issuer: Issue, consume, peek and sweep with a single expiry predicate.
"""
