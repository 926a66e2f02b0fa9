"""Infrastructure: database pool, cleanup queue and driver implementations."""
