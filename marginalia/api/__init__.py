# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - deps.py: user scope, engine/paginator factories, param parsing
#   - search.py: GET /search (full-text or hybrid)
#   - feed.py: GET /feed (seeded shuffle, paginated)
# =============================================================================
