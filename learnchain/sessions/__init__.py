"""
Session ingestion: log adapters, normalization and discovery.
"""
