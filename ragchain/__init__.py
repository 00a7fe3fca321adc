"""Retrieval-augmented generation over file-backed vector stores, with
persistent windowed chat memory."""

__version__ = "0.1.0"
