"""
Service layer package.

Business logic lives here, grouped by concern. Services receive an
``AsyncSession`` or already-built collaborators and never touch FastAPI.
"""
