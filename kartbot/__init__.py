"""Karting Central help assistant: retrieval-augmented FAQ answering."""
