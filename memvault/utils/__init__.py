"""Configuration, logging, concurrency and generator helpers."""
