"""mediadb_shared — Shared code for the media database Lambda functions.

Provides:
    - Document schema, image stripping and smart merge
    - Read/write sync orchestration over pluggable document stores
    - DynamoDB, REST table and GitHub file store adapters
    - Admin credential checks
    - HTTP response helpers with CORS
    - DynamoDB serialization/deserialization
"""

__version__ = "1.0.0"
