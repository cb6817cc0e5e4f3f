"""Configuration, logging, errors and FastAPI dependencies."""
