"""
Companies module: the caller's own company records (JSON API under /api/company).

One company per owner may be marked primary; see modules.primary_flag.
"""
