"""
Persona Engine - Retrieval-Grounded Character Chat

A FastAPI-based system for chatting with fixed-personality characters whose
replies are grounded in a per-character knowledge corpus stored in a vector
index.
"""

__version__ = "0.1.0"
