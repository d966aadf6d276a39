"""Grounded citations for page and video Q&A."""
