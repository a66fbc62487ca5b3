"""Infrastructure helpers: database migrations for the price alerts service."""
