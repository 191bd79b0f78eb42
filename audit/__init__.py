"""audit/ -- Append-only security event trail for VaultGuard.

Layer rule: audit/ imports only stdlib + third-party libraries.
It does NOT import from api/ or auth/. auth/ writes to audit/, never the
other way around.
"""
