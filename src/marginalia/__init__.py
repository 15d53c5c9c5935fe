"""marginalia - lossless markdown codec, paste classifier and suggestion engine for rich note editors."""

__version__ = "0.1.0"
