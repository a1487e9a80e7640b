"""Console clients for observing a coordinator."""
