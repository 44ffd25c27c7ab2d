"""Input graph and resolution."""
