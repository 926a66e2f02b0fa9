"""Cross-cutting concerns: configuration, logging, typed errors."""
