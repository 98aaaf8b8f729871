"""REST API for the Login Management Engine."""
