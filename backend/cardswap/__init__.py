"""cardswap: trading-card marketplace trade core."""
