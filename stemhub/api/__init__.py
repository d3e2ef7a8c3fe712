"""HTTP API for StemHub."""
