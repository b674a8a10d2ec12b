"""Configuration, logging, errors and authentication."""
