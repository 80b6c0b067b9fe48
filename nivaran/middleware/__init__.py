"""HTTP middleware (request context, error handling)."""
