"""Domain services for Stakeboard."""
