"""
Provider routing and invocation for the chat endpoint.
"""
