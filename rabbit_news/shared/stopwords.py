"""
Consolidated word lists: single source for tokenizer and similarity filtering.

Used by:
  - rabbit_news.news.tickers (acronyms that look like symbols)
  - rabbit_news.news.clusterer (similarity vocabulary)
"""
from __future__ import annotations

# Upper-case tokens that appear in financial headlines but are not symbols.
# Only consulted for bare tokens; a cashtag ($SEC) or exchange tag always wins.
NON_TICKER_ACRONYMS = frozenset({
    "A", "I", "AI", "AM", "PM", "US", "USA", "UK", "EU", "UN", "NYC",
    "CEO", "CFO", "COO", "CTO", "CMO", "VP", "IPO", "SPAC", "ETF", "ETFS",
    "SEC", "FDA", "FTC", "DOJ", "IRS", "FED", "FOMC", "ECB", "BOJ", "IMF",
    "GDP", "CPI", "PPI", "PCE", "EPS", "PE", "ROI", "YOY", "QOQ", "TTM",
    "Q1", "Q2", "Q3", "Q4", "H1", "H2", "FY",
    "NYSE", "NASDAQ", "AMEX", "OTC", "S&P", "DJIA", "DOW",
    "EV", "EVS", "TV", "PC", "IT", "HR", "PR", "ESG", "API", "AR", "VR",
    "LLC", "INC", "CORP", "LTD", "PLC", "CO",
    "USD", "EUR", "GBP", "JPY", "CNY", "BTC", "ETH",
    "THE", "AND", "FOR", "BUT", "NOT", "NEW", "ALL", "NOW", "CAN", "MAY",
    "ONE", "TWO", "TOP", "BIG", "WHY", "HOW", "WHO", "WHAT", "THIS", "THAT",
    "UPDATE", "BREAKING", "LIVE", "WATCH", "VIDEO", "REPORT", "NEWS",
})

# Similarity vocabulary stopwords, ignored when comparing article text.
SIMILARITY_STOP = frozenset({
    "the", "and", "for", "its", "are", "was", "were", "been", "has", "have",
    "had", "with", "from", "will", "would", "could", "should", "this", "that",
    "these", "those", "into", "over", "after", "before", "about", "than",
    "also", "amid", "said", "says", "new", "more", "most", "not", "but",
    "who", "how", "why", "what", "when", "where", "which", "can", "may",
    "per", "via", "its", "their", "they", "you", "your", "our", "all",
    "inc", "corp", "company", "shares", "stock", "stocks", "market", "markets",
    "today", "week", "year", "report", "reports", "news",
})
