"""
Advisor chat orchestration service.
"""
