"""ShopEase account and authentication service."""
