"""auth/ -- Authentication building blocks for SessionGuard.

Credential store, password hashing and policy, server-side sessions, CSRF
tokens and the login rate limiter.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or web/.
api/ and web/ import from auth/, not the other way around.
"""
