"""Enumeration, hashing and scan coordination."""
