"""
Restaurant search engine.

Responsibilities:
- Compile raw query parameters into a backend-agnostic filter spec.
- Keep the restaurant dataset in memory with text and geospatial lookups.
- Execute attribute and proximity searches with consistent pagination totals.
- Evaluate weekly opening hours for the live "open now" filter.
"""
