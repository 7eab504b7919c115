import os

DATABASE_URL = os.getenv("VCSTORE_DATABASE_URL", "memory://")

# Upper bound on backend lookups in flight for a single match call
MAX_CONCURRENT_LOOKUPS = int(os.getenv("VCSTORE_MAX_CONCURRENT_LOOKUPS", "5"))

# "any": every listed trusted issuer constrains a query
# "required": only issuers flagged required: true do
TRUSTED_ISSUER_POLICY = os.getenv("VCSTORE_TRUSTED_ISSUER_POLICY", "any")

# Both must be set (JSON JWKs) to run the store encrypted
HMAC_JWK = os.getenv("VCSTORE_HMAC_JWK")
KEY_AGREEMENT_JWK = os.getenv("VCSTORE_KEY_AGREEMENT_JWK")

LOG_LEVEL = os.getenv("VCSTORE_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("VCSTORE_LOG_FILE")
