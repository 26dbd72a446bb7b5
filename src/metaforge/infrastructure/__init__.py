"""Infrastructure layer — transaction context, database, repositories, datastore.

This layer depends on stdlib and third-party libs (SQLAlchemy, aiosqlite)
plus the domain, mapping, and registry layers.
It must never import from services or plugins.
"""
