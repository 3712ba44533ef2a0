"""npm integration: rc management, package-manager driver and build-info pipeline."""
