"""Engine services: balance aggregation and the wallet transfer service."""
