"""
Token validation package.

Validates session tokens minted by this service, for the ``/verify``
endpoint and for routes protected with a bearer credential. Shapes a
consistent verification response and resolves the token subject to the
authenticated identifier.
"""
