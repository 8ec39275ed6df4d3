"""
Session tokens (HS256 JWT) with ordered-secret verification for rotation.
"""
