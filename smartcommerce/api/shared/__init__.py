"""Code shared by all API versions: auth, dependencies, helpers, middleware."""
