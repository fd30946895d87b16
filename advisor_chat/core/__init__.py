"""
Core configuration, error taxonomy and provider registry.
"""
