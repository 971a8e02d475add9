"""Shared constants across the application."""

# Interaction weights for preference calculation
INTERACTION_WEIGHTS = {
    "search": 1.0,
    "view": 2.0,
    "click": 3.0,
    "add_to_cart": 5.0,
    "purchase": 10.0,
}

# Names used by older mobile clients
INTERACTION_TYPE_ALIASES = {
    "product_view": "view",
    "product_click": "click",
}

ENGAGEMENT_MULTIPLIER = 0.1
MAX_ENGAGEMENT_SCORE = 100.0

# Categories the dashboard can display
DASHBOARD_CATEGORIES = [
    "Electronics",
    "Fashion",
    "Home & Garden",
    "Food & Beverages",
    "Personal Care",
    "Sports & Outdoors",
    "Books & Stationery",
    "Toys & Games",
]

SUSTAINABILITY_GRADES = ["A", "B", "C", "D", "E", "F"]
ECO_FRIENDLY_GRADES = ["A", "B"]

# Bounded history sizes
MAX_SEARCH_HISTORY = 50
MAX_PRODUCT_INTERACTIONS = 100
DASHBOARD_CATEGORY_COUNT = 3

# Price bands (upper bound of budget, upper bound of mid-range)
BUDGET_PRICE_CEILING = 25.0
MID_RANGE_PRICE_CEILING = 100.0

# Recommendation scoring
DEFAULT_RECOMMENDATION_LIMIT = 20
TIME_DECAY_FACTOR = 0.1
RECENT_INTERACTION_DAYS = 7
SIGNIFICANT_PRODUCT_INTERACTIONS = 5
SIGNIFICANT_SEARCHES = 3

# Goals
MILESTONE_THRESHOLDS = [25, 50, 75]
DEFAULT_TARGET_PERCENTAGE = 80
RECENT_STREAK_WINDOW = 10

# Cache time-to-live per read method, in seconds
CACHE_TTL_SECONDS = {
    "get_user_goals": 2 * 60,
    "get_goal_stats": 5 * 60,
    "get_goal_progress": 1 * 60,
    "get_recommendations": 2 * 60,
    "get_behavior_insights": 2 * 60,
    "check_product_meets_goals": 10 * 60,
    "generate_goal_description": 30 * 60,
    "validate_goal_config": 30 * 60,
    "get_goal_progress_status": 60 * 60,
}
DEFAULT_CACHE_TTL_SECONDS = 5 * 60

# Read methods whose cached entries are dropped after each write method
CACHE_INVALIDATION = {
    "create_goal": ["get_user_goals", "get_goal_stats", "check_product_meets_goals"],
    "update_goal": [
        "get_user_goals",
        "get_goal_stats",
        "get_goal_progress",
        "check_product_meets_goals",
    ],
    "delete_goal": [
        "get_user_goals",
        "get_goal_stats",
        "get_goal_progress",
        "check_product_meets_goals",
    ],
    "track_purchase": ["get_user_goals", "get_goal_stats", "get_goal_progress"],
    "track_interaction": ["get_recommendations", "get_behavior_insights"],
    "record_survey": ["get_recommendations", "get_behavior_insights"],
}

# Weekly sweep
WEEKLY_WINDOW_DAYS = 7
