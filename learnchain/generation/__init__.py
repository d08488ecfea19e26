"""
Quiz generation: the HTTP client, the bounded-concurrency pipeline and its
background host.
"""
