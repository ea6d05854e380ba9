"""Matchup aggregation engine, its async feed and the tier-list read path."""
