"""
API route modules, one subrouter per domain.

- Auth, Users, Roles: authentication and administration
- Machines, Products, Inventory: fleet, catalogue and three-level stock
- Promo, Orders, Payments, Fiscal: sales flow from checkout to fiscal receipt
- Contracts, Maintenance, Reports: back-office operations and exports

Routers are included from src.api.main (under the /api/v1 prefix).
"""
