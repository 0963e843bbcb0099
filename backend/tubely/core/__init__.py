"""
Core infrastructure for the Tubely backend.

- auth: Bearer token verification into a CallerIdentity
- body_limit: ASGI middleware enforcing the request body ceiling
- database: MongoDB async client with Motor driver and connection pooling
- errors: Domain error taxonomy rendered as the JSON error envelope
- storage: S3-compatible storage client for MinIO/AWS S3 operations

Clients follow the singleton pattern for efficient resource management.
"""
