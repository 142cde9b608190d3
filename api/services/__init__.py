"""Service layer for business logic.

Services encapsulate all business logic, keeping routes thin and focused
on HTTP handling.

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Database)

Services should:
- Contain the visibility rules and parent validation
- Orchestrate calls to repositories and the content loader
- Not contain HTTP-specific logic (status codes, response formatting)

Services should NOT:
- Directly execute SQL queries (use repositories)
- Know about HTTP request/response details
"""
