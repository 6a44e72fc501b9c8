"""
Technical onboarding service.

Signs a user in with GitHub, lets them choose onboarding tracks, and streams the
progress of the provisioning job over a WebSocket.
"""

from onboarding.version import SEMANTIC_VERSION

__version__ = SEMANTIC_VERSION
