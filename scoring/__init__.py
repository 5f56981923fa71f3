"""Individual candidate scoring: open-to-work, job stability, platform engagement, skill match.

Every scorer is a pure function over a candidate mapping and returns a value in
[0, 10]; missing data degrades to a documented default instead of raising.
"""
