"""
Clients and helpers for external providers.

- multikassa: online cash register (fiscalization) HTTP client
- payment_signatures: Payme, Click and Uzum request signing and verification
"""
