"""Perceptual fingerprint decoders."""
