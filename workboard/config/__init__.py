"""Configuration for the workboard store (YAML with environment overrides)."""
