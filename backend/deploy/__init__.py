"""Deployment manifests bundled with kflow."""
