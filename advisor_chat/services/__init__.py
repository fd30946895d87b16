"""
External lookups and context assembly for chat requests.
"""
