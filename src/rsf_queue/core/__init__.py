"""
Application core: wiring, lifecycle, logging and HTTP plumbing.
"""
