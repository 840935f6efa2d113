"""HTTP API: routes and wire schemas."""
