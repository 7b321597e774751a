"""
Cross-cutting building blocks shared by the feature packages.

`core/` holds the DB pool, environment settings, logging setup and the
outbound rate limiter. Feature SQL and business rules live in `cadastre/`,
`search/` and `registry/`.
"""
