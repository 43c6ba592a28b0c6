from .token_stats import TokenStats, get_top_tokens_by_volume
