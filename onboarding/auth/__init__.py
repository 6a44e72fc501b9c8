"""
GitHub login for the onboarding UI.

Design goals:
- One OAuth2 authorization-code flow per login attempt (fresh CSRF nonce each time).
- No automatic retries: authorization codes are single-use.
- Cookie-based session (HttpOnly, signed) that only carries the user id.
"""
