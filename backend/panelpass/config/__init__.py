"""Configuration: environment settings and plan catalog."""
