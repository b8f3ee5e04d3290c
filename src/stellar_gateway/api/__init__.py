"""HTTP API for the Stellar AI gateway."""
