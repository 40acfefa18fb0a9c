"""HTTP routers for the sales desk API."""
