"""Request-scoped dependencies: who the browser is, its Session Record, and the API client."""
