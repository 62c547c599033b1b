"""
Constants for tenancy concerns.
"""

# Headers injected on the downstream request once a church is resolved.
CHURCH_SLUG_HEADER = "x-church-slug"
CHURCH_ID_HEADER = "x-church-id"

# Diagnostic header carrying the original path on the root domain.
PATHNAME_HEADER = "x-pathname"

# Headers the resolver owns. Inbound copies are always discarded.
RESOLVER_HEADERS = (CHURCH_SLUG_HEADER, CHURCH_ID_HEADER, PATHNAME_HEADER)

FORWARDED_HOST_HEADER = "x-forwarded-host"
