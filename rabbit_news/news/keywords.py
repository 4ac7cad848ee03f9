"""
Keyword tables shared by the fetch filter, cleaner and event detector.

Matching is case-insensitive on word boundaries (see shared.helpers.keyword_in),
so "sec" does not fire on "second" and "fed" does not fire on "federal".
"""

MACRO_KEYWORDS = [
    "fed", "federal reserve", "inflation", "gdp", "unemployment", "interest rate", "interest rates",
    "rate cut", "rate cuts", "rate hike", "rate hikes", "policy",
]
REGULATION_KEYWORDS = ["regulation", "sec", "fda", "approval", "ban", "fine"]

# ── Holdings search hard filter ──
# Listicles and analyst-rating churn: never worth a slot even for a held symbol
HOLDINGS_DENY_PATTERNS = [
    "3 stocks", "5 stocks", "top picks", "should you buy", "dividend kings",
    "options traders", "price target raised", "price target lowered",
    "upgrade", "downgrade", "zacks rank", "the motley fool recommends",
    "analyst says", "analyst recommends", "analyst upgrades", "analyst downgrades",
]
HOLDINGS_EVENT_KEYWORDS = [
    "earnings", "guidance", "launch", "announces", "acquires", "merger",
    "lawsuit", "regulation", "reports", "record high", "record low",
    "all-time high", "all-time low", "beats", "misses", "forecast",
]

# ── Top-story (feed) hard filter ──
GENERIC_STORY_PATTERNS = [
    "what to know before the bell", "stocks to buy now", "why",
    " is a buy", " is a sell", " is a hold", "should you buy", "should you sell",
]

# ── Cleaner ──
DESCRIPTION_BOILERPLATE = [
    "Click here to read more", "Read the full story", "Continue reading",
    "See full article", "More details", "View original article",
]
PAGE_BOILERPLATE = [
    "Cookie Policy", "Privacy Policy", "Terms of Service",
    "Subscribe to our newsletter", "Follow us on", "Share this article",
    "Related articles", "Advertisement", "Sponsored",
]
EVENT_VERBS = [
    "reports", "announces", "acquires", "sues", "launches", "beats", "misses",
    "raises", "lowers", "increases", "decreases", "surges", "plunges",
    "files", "settles", "approves", "rejects", "wins", "loses",
]

# Named outlets whose quality beats their layer baseline (substring of lower-cased source name)
OUTLET_QUALITY = {
    "reuters": 1.0,
    "bloomberg": 1.0,
    "cnbc": 0.90,
    "yahoo": 0.85,
    "marketwatch": 0.80,
}
LAYER_QUALITY = {1: 1.0, 2: 0.85, 3: 0.60}
