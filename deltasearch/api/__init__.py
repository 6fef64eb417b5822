"""HTTP API: search, index status and build job endpoints."""
