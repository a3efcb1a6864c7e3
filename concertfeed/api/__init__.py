"""HTTP API for triggering syncs and querying concerts."""
