"""
Domain layer containing core business logic and domain services.

Submodules:
- relay: Signaling relay (participant roles, handshake routing).
"""
