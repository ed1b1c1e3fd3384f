"""HTTP transport for the governance pipeline."""
