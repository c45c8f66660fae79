"""
Sign Client - Real-time sign language word recognition client.

This module runs on a client machine (laptop), extracts hand landmarks from
camera frames locally with MediaPipe, groups normalized per-frame features
into fixed-length windows, and sends them to a remote classifier over HTTP.
Recognized words are collected into a buffer that can be turned into a
sentence by the same service.
"""

__version__ = "1.0.0"
