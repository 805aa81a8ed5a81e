"""
Core: configuration, exceptions, logging, observers and the job engine.
"""
