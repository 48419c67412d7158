"""HTTP routes, dependencies and middleware."""
