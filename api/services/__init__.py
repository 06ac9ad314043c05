"""Service layer for business logic.

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Database)

Services take the session as their first argument, raise domain exceptions
defined next to the code that raises them, and never commit; the caller
(request dependency or batch job) owns the transaction.
"""
