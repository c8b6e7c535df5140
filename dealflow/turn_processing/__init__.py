"""Action validation and dispatch.

Every mutating request (HTTP, advisor, tests) goes through the same validator
pipeline before it reaches the reducer or the time engine.
"""
