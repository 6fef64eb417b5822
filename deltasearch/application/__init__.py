"""Application layer: service orchestrators used by the API, CLI and workers."""
