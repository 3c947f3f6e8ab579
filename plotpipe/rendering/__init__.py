"""Format registry, protocol client and render API."""
