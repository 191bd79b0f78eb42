"""auth/ -- Authentication core for VaultGuard.

Password check, one-time codes, approval gate, signed tokens and the login
state machine that ties them together (auth/service.py).

Layer rule: auth/ imports only stdlib + third-party libraries, core/ and
audit/. It does NOT import from api/. api/ imports from auth/, not the other
way around.
"""
