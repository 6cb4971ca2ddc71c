"""Identity and session handling: local token storage, identity provider config, session token checks."""
