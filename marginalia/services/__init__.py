# =============================================================================
# Services Package — Retrieval Core
# =============================================================================
#   - errors.py: InvalidArgument / Upstream / missing-scope exceptions
#   - embedder.py: OpenAI-compatible embedding generation
#   - fusion.py: Reciprocal Rank Fusion over in-memory ranked lists
#   - store.py: AnnotationStore protocol + PostgreSQL query builders
#   - search.py: SearchEngine (full-text and hybrid modes)
#   - feed.py: FeedPaginator (seeded shuffle with has-more pagination)
# =============================================================================
