"""Shared constants across the application."""

# Engagement score multipliers (purchase > cart add > view)
SCORE_WEIGHTS = {
    "buys": 3,
    "cart_adds": 2,
    "views": 1,
}

# Fallbacks for missing product attributes in campaign emails
DEFAULT_PRODUCT_NAME = "Your Selected Product"
DEFAULT_PRODUCT_DESCRIPTION = "This amazing product is perfect for your needs!"
DEFAULT_PRODUCT_IMAGE = "https://your-store.com/default-product-image.jpg"
DEFAULT_PRODUCT_PRICE = 0.0
DEFAULT_GREETING_NAME = "there"

# Campaign defaults
DEFAULT_VIEW_THRESHOLD = 3
DEFAULT_DISCOUNT_PERCENT = 10

# Cache
LEADERBOARD_CACHE_KEY = "leads:leaderboard"
LEADERBOARD_CACHE_TTL_SECONDS = 60
