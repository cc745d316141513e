"""Infrastructure adapters: database, Redis pool, request correlation."""
