"""Pipeline Demo API service."""
