"""
Shared, cross-cutting code for the API.

`core/` holds the building blocks every feature leans on: the DB pool,
the object-storage client and logging setup. Feature SQL and business rules
stay in the feature package (e.g. `blogs/`).
"""
