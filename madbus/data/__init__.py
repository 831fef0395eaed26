"""Schedule and live-feed data sources."""
