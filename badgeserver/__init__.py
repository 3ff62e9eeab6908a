"""
Badge Server - Open Badges 3.0 credential integrity core.

Key protection at rest, Ed25519 credential signing and verification.
"""

__version__ = "1.0.0"
