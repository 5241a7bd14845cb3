"""Rasterization, overlays and e-ink post-processing."""
