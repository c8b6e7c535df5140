"""Core simulation primitives (clamping, randomness, log events, advisor context).

Kept free of FastAPI and Redis concerns so the reducer, the time engine and
the tests can use them directly.
"""
