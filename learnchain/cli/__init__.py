"""
Command line interface for learnchain.
"""
