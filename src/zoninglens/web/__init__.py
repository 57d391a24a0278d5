"""HTTP surface: app factory, lookup routes and rate limiting."""
