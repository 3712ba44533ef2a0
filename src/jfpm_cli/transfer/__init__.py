"""Config transfer between two Artifactory instances: merge and pre-checks."""
