"""Session, subscription and reporting services."""
