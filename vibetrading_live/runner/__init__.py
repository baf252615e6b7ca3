"""Engine runtime: registry, signal router, lifecycle and composition."""
