# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Response schemas for the API, separate from the ORM models in
# marginalia/db/models.py. Embedding vectors never leave the server.
# JSON field names are camelCase (bookId, hasMore, ...) for the web client.
# =============================================================================
