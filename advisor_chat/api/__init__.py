"""HTTP surface of the chat service."""
