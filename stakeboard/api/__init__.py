"""HTTP API for Stakeboard."""
