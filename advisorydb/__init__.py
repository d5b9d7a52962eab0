"""Read security advisory feeds into an in-memory advisory store."""

__version__ = "0.1.0"

__all__ = [
    "azure",
    "bucket",
    "bundler",
    "chainguard",
    "cocoapods",
    "composer",
    "debian",
    "debversion",
    "echo",
    "glad",
    "minimos",
    "model",
    "oval",
    "transformers",
]