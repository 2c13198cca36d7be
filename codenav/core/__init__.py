"""Core domain types for codenav: ids, value objects, errors and settings."""
