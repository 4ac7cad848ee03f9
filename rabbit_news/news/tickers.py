"""
Ticker extraction: tokenizer + symbol gazetteer.

HOW IT WORKS:
  1. A regex tokenizer splits text into word tokens (keeping $cashtags and
     exchange tags like "(NASDAQ: AAPL)" as single signals).
  2. PRIMARY: a token is accepted as a ticker when
       - it is a cashtag ($XYZ) or exchange-tagged symbol (always trusted), or
       - it is an upper-case token present in the gazetteer and not a known
         non-ticker acronym, or
       - a run of tokens matches a gazetteer company name ("Apple",
         "Goldman Sachs").
  3. SECONDARY: the context-keyword map ("iPhone" → AAPL) only contributes
     when nothing else in the text resolved to a symbol.

The gazetteer is a symbol → (company name, sector) table. Deployments can
extend it with a JSON file via TICKER_GAZETTEER_PATH.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..shared.stopwords import NON_TICKER_ACRONYMS

logger = logging.getLogger(__name__)

# symbol → {"name": company name, "sector": coarse sector, "aliases": extra names}
TICKER_GAZETTEER: Dict[str, Dict] = {
    # Technology
    "AAPL": {"name": "Apple", "sector": "tech"},
    "MSFT": {"name": "Microsoft", "sector": "tech"},
    "GOOGL": {"name": "Alphabet", "sector": "tech", "aliases": ["Google"]},
    "GOOG": {"name": "Alphabet", "sector": "tech"},
    "AMZN": {"name": "Amazon", "sector": "tech"},
    "META": {"name": "Meta Platforms", "sector": "tech", "aliases": ["Meta", "Facebook"]},
    "NVDA": {"name": "Nvidia", "sector": "tech"},
    "NFLX": {"name": "Netflix", "sector": "tech"},
    "AMD": {"name": "Advanced Micro Devices", "sector": "tech"},
    "INTC": {"name": "Intel", "sector": "tech"},
    "ORCL": {"name": "Oracle", "sector": "tech"},
    "CRM": {"name": "Salesforce", "sector": "tech"},
    "ADBE": {"name": "Adobe", "sector": "tech"},
    "AVGO": {"name": "Broadcom", "sector": "tech"},
    "CSCO": {"name": "Cisco", "sector": "tech"},
    "IBM": {"name": "IBM", "sector": "tech"},
    "QCOM": {"name": "Qualcomm", "sector": "tech"},
    "TSM": {"name": "Taiwan Semiconductor", "sector": "tech", "aliases": ["TSMC"]},
    "PLTR": {"name": "Palantir", "sector": "tech"},
    "SHOP": {"name": "Shopify", "sector": "tech"},
    "UBER": {"name": "Uber", "sector": "tech"},
    "SNOW": {"name": "Snowflake", "sector": "tech"},
    # EV / autos
    "TSLA": {"name": "Tesla", "sector": "ev"},
    "RIVN": {"name": "Rivian", "sector": "ev"},
    "LCID": {"name": "Lucid", "sector": "ev"},
    "NIO": {"name": "NIO", "sector": "ev"},
    "F": {"name": "Ford", "sector": "auto"},
    "GM": {"name": "General Motors", "sector": "auto"},
    # Financials
    "JPM": {"name": "JPMorgan", "sector": "financials", "aliases": ["JPMorgan Chase"]},
    "BAC": {"name": "Bank of America", "sector": "financials"},
    "GS": {"name": "Goldman Sachs", "sector": "financials"},
    "MS": {"name": "Morgan Stanley", "sector": "financials"},
    "WFC": {"name": "Wells Fargo", "sector": "financials"},
    "C": {"name": "Citigroup", "sector": "financials", "aliases": ["Citi"]},
    "V": {"name": "Visa", "sector": "financials"},
    "MA": {"name": "Mastercard", "sector": "financials"},
    "PYPL": {"name": "PayPal", "sector": "financials"},
    "COIN": {"name": "Coinbase", "sector": "financials"},
    "BRK.B": {"name": "Berkshire Hathaway", "sector": "financials"},
    # Healthcare
    "JNJ": {"name": "Johnson & Johnson", "sector": "healthcare"},
    "PFE": {"name": "Pfizer", "sector": "healthcare"},
    "MRK": {"name": "Merck", "sector": "healthcare"},
    "LLY": {"name": "Eli Lilly", "sector": "healthcare"},
    "UNH": {"name": "UnitedHealth", "sector": "healthcare"},
    "MRNA": {"name": "Moderna", "sector": "healthcare"},
    "ABBV": {"name": "AbbVie", "sector": "healthcare"},
    "NVO": {"name": "Novo Nordisk", "sector": "healthcare"},
    # Energy
    "XOM": {"name": "Exxon Mobil", "sector": "energy", "aliases": ["Exxon"]},
    "CVX": {"name": "Chevron", "sector": "energy"},
    "OXY": {"name": "Occidental Petroleum", "sector": "energy"},
    # Consumer / retail
    "WMT": {"name": "Walmart", "sector": "consumer"},
    "COST": {"name": "Costco", "sector": "consumer"},
    "TGT": {"name": "Target Corp", "sector": "consumer"},
    "HD": {"name": "Home Depot", "sector": "consumer"},
    "NKE": {"name": "Nike", "sector": "consumer"},
    "SBUX": {"name": "Starbucks", "sector": "consumer"},
    "MCD": {"name": "McDonald's", "sector": "consumer"},
    "KO": {"name": "Coca-Cola", "sector": "consumer"},
    "PEP": {"name": "PepsiCo", "sector": "consumer"},
    "DIS": {"name": "Disney", "sector": "consumer", "aliases": ["Walt Disney"]},
    # Industrials
    "BA": {"name": "Boeing", "sector": "industrials"},
    "CAT": {"name": "Caterpillar", "sector": "industrials"},
    "GE": {"name": "General Electric", "sector": "industrials"},
    "LMT": {"name": "Lockheed Martin", "sector": "industrials"},
    # Telecom
    "T": {"name": "AT&T", "sector": "telecom"},
    "VZ": {"name": "Verizon", "sector": "telecom"},
    # Index funds
    "SPY": {"name": "SPDR S&P 500", "sector": "index"},
    "QQQ": {"name": "Invesco QQQ", "sector": "index"},
}

# Secondary signal: product / brand words that imply a symbol
CONTEXT_KEYWORDS = {
    "iphone": "AAPL",
    "ipad": "AAPL",
    "apple": "AAPL",
    "tesla": "TSLA",
    "cybertruck": "TSLA",
    "microsoft": "MSFT",
    "windows": "MSFT",
    "google": "GOOGL",
    "youtube": "GOOGL",
    "amazon": "AMZN",
    "aws": "AMZN",
    "meta": "META",
    "facebook": "META",
    "instagram": "META",
    "nvidia": "NVDA",
    "netflix": "NFLX",
}

# Sector keyword hints for thematic relevance (scorer)
SECTOR_KEYWORDS = {
    "tech": ["tech", "technology", "software", "cloud", "ai", "artificial intelligence", "chip", "semiconductor"],
    "ev": ["electric vehicle", "ev", "evs", "battery", "charging", "tesla"],
    "auto": ["automaker", "auto", "vehicle", "car sales"],
    "financials": ["bank", "banks", "lender", "interest rate", "credit", "payments"],
    "healthcare": ["drug", "pharma", "fda", "vaccine", "biotech", "healthcare"],
    "energy": ["oil", "crude", "opec", "natural gas", "energy"],
    "consumer": ["retail", "consumer spending", "shoppers", "restaurant"],
    "industrials": ["aerospace", "defense", "manufacturing", "factory"],
    "telecom": ["wireless", "telecom", "5g", "broadband"],
}

_TOKEN_RE = re.compile(
    r"\((?:NYSE|NASDAQ|Nasdaq|AMEX|NYSEARCA|OTC)\s*:\s*(?P<exch>[A-Z]{1,5}(?:\.[A-Z])?)\)"
    r"|\$(?P<cash>[A-Z]{1,5}(?:\.[A-Z])?)\b"
    r"|(?P<word>[A-Za-z][A-Za-z0-9&'.\-]*)"
)


class TickerExtractor:
    """Resolves ticker symbols from free text using the gazetteer."""

    def __init__(self, gazetteer: Optional[Dict[str, Dict]] = None, extra_path: Optional[str] = None):
        self.gazetteer: Dict[str, Dict] = dict(gazetteer or TICKER_GAZETTEER)
        if extra_path:
            self._merge_file(extra_path)
        self._name_index = self._build_name_index()
        self._max_name_tokens = max((len(k) for k in self._name_index), default=1)

    def _merge_file(self, path: str):
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ticker gazetteer {path} not loaded: {e}")
            return
        added = 0
        for symbol, entry in data.items():
            if isinstance(entry, str):
                entry = {"name": entry}
            if isinstance(entry, dict) and entry.get("name"):
                self.gazetteer[symbol.upper()] = entry
                added += 1
        logger.info(f"Ticker gazetteer: merged {added} symbols from {path}")

    def _build_name_index(self) -> Dict[tuple, str]:
        index: Dict[tuple, str] = {}
        for symbol, entry in self.gazetteer.items():
            for name in [entry.get("name", "")] + list(entry.get("aliases", [])):
                words = tuple(w.lower() for w in tokenize(name))
                # Single short names ("C", "V") would match every article: require a symbol match instead
                if words and not (len(words) == 1 and len(words[0]) <= 2):
                    index.setdefault(words, symbol)
        return index

    def is_known(self, symbol: str) -> bool:
        return symbol.upper() in self.gazetteer

    def sector_of(self, symbol: str) -> Optional[str]:
        entry = self.gazetteer.get(symbol.upper())
        return entry.get("sector") if entry else None

    def company_name(self, symbol: str) -> Optional[str]:
        entry = self.gazetteer.get(symbol.upper())
        return entry.get("name") if entry else None

    def extract(
        self,
        text: str,
        candidates: Iterable[str] = (),
        extra_symbols: Iterable[str] = (),
    ) -> List[str]:
        """Ordered, de-duplicated symbols mentioned in `text`.

        `candidates` (e.g. the ticker a holdings search was issued for) are
        carried over first. `extra_symbols` are treated as known symbols even
        when the gazetteer lacks them (the user's own holdings).
        """
        known_extra = {s.upper() for s in extra_symbols}
        found: List[str] = []
        for c in candidates:
            if c and c.upper() not in found:
                found.append(c.upper())
        if not text:
            return found

        # (offset, symbol) hits, sorted afterwards so the result is first-mention order
        hits: List[tuple] = []
        words: List[tuple] = []
        for m in _TOKEN_RE.finditer(text):
            if m.group("exch"):
                hits.append((m.start(), m.group("exch")))
            elif m.group("cash"):
                hits.append((m.start(), m.group("cash")))
            else:
                word = _normalize_word(m.group("word"))
                if not word:
                    continue
                words.append((m.start(), word))
                if word in known_extra or self._is_bare_symbol(word):
                    hits.append((m.start(), word))

        hits.extend(self._match_names(words))

        resolved = [sym for _, sym in sorted(hits, key=lambda h: h[0])]
        if not resolved and not found:
            resolved = context_tickers(text)
        for sym in resolved:
            if sym.upper() not in found:
                found.append(sym.upper())
        return found

    def _is_bare_symbol(self, word: str) -> bool:
        # Single letters (C, F, T, V) only count as cashtags or exchange tags
        return (
            len(word) > 1
            and word.isupper()
            and word in self.gazetteer
            and word not in NON_TICKER_ACRONYMS
        )

    def _match_names(self, words: List[tuple]) -> List[tuple]:
        lowered = [w.lower() for _, w in words]
        hits = []
        i = 0
        while i < len(lowered):
            matched = 0
            # Longest company name first ("bank of america" before "bank")
            for n in range(min(self._max_name_tokens, len(lowered) - i), 0, -1):
                symbol = self._name_index.get(tuple(lowered[i:i + n]))
                # Names must be capitalized in the source text ("apple pie" is not Apple)
                if symbol and words[i][1][:1].isupper():
                    hits.append((words[i][0], symbol))
                    matched = n
                    break
            i += matched or 1
        return hits


def _normalize_word(word: str) -> str:
    word = word.strip(".'-")
    if word.lower().endswith("'s"):
        word = word[:-2]
    return word


def tokenize(text: str) -> List[str]:
    """Plain word tokens (no cashtag / exchange handling)."""
    tokens = (_normalize_word(m.group(0)) for m in re.finditer(r"[A-Za-z0-9][A-Za-z0-9&'.\-]*", text or ""))
    return [t for t in tokens if t]


def context_tickers(text: str) -> List[str]:
    """Symbols implied by product/brand keywords, first-mention order."""
    lowered = (text or "").lower()
    hits = []
    for keyword, symbol in CONTEXT_KEYWORDS.items():
        m = re.search(rf"\b{re.escape(keyword)}\b", lowered)
        if m:
            hits.append((m.start(), symbol))
    ordered: List[str] = []
    for _, symbol in sorted(hits):
        if symbol not in ordered:
            ordered.append(symbol)
    return ordered


_default_extractor: Optional[TickerExtractor] = None


def get_ticker_extractor() -> TickerExtractor:
    """Process-wide extractor built from settings (gazetteer file is read once)."""
    global _default_extractor
    if _default_extractor is None:
        from ..config import get_settings
        _default_extractor = TickerExtractor(extra_path=get_settings().ticker_gazetteer_path)
    return _default_extractor
