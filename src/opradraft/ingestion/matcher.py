"""Municipality matcher: does a candidate document belong to the requested jurisdiction?

Search engines routinely return same-named towns in other states (Newark,
Delaware for Newark, New Jersey), so this is the main jurisdiction guard.
Also scores candidate URLs for authority and builds the query
reformulations discovery runs.
"""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from opradraft.core.types import MatchResult, MunicipalityInfo

# Code publishers that host authoritative municipal codes
CODE_PUBLISHER_DOMAINS = ("ecode360.com", "municode.com", "generalcode.com", "codelibrary.amlegal.com")

MUNICIPALITY_TYPES = ("City", "Township", "Borough", "Town", "Village")

US_STATES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas", "CA": "California",
    "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware", "FL": "Florida", "GA": "Georgia",
    "HI": "Hawaii", "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
    "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi",
    "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada", "NH": "New Hampshire",
    "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York", "NC": "North Carolina",
    "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania",
    "RI": "Rhode Island", "SC": "South Carolina", "SD": "South Dakota", "TN": "Tennessee",
    "TX": "Texas", "UT": "Utah", "VT": "Vermont", "VA": "Virginia", "WA": "Washington",
    "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
}

# Same-named towns in these states are the usual false positives; a page that
# names one of them and never the target state is about the wrong jurisdiction.
# Targets without an entry are checked against every other state.
NEIGHBORING_STATES = {
    "NJ": ("Delaware", "Pennsylvania", "New York", "Connecticut", "Maryland"),
}

# URL path segments that mark another state's code (e.g. ecode360.com/ny/...)
_OTHER_STATE_PATH = re.compile(r"/([a-z]{2})/")


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _word_pattern(phrase: str) -> re.Pattern:
    return re.compile(r"\b" + r"\s+".join(re.escape(w) for w in phrase.split()) + r"\b", re.IGNORECASE)


def _county_name(county: str) -> str:
    return re.sub(r"\s+county$", "", county.strip(), flags=re.IGNORECASE)


def split_municipality_type(municipality: str) -> tuple[str, str | None]:
    """``"Washington Township"`` or ``"Township of Washington"`` -> ("Washington", "Township")."""
    name = municipality.strip()
    for kind in MUNICIPALITY_TYPES:
        prefix = re.match(kind + r"\s+of\s+(.+)$", name, re.IGNORECASE)
        if prefix:
            return prefix.group(1).strip(), kind
        suffix = re.match(r"(.+?)\s+" + kind + r"$", name, re.IGNORECASE)
        if suffix:
            return suffix.group(1).strip(), kind
    return name, None


@dataclass
class MunicipalityMatcher:
    """Jurisdiction checks for one target state (New Jersey by default)."""

    state: str = "New Jersey"
    state_abbr: str = "NJ"

    def __post_init__(self) -> None:
        # Full name in any case; abbreviation only as written ("NJ", "N.J.")
        self._state_pattern = re.compile(
            r"(?i:\b" + r"\s+".join(re.escape(w) for w in self.state.split()) + r"\b)"
            + r"|\b" + re.escape(self.state_abbr) + r"\b"
            + r"|\b" + r"\.".join(self.state_abbr) + r"\."
        )
        neighbors = NEIGHBORING_STATES.get(self.state_abbr.upper())
        if neighbors is None:
            neighbors = tuple(
                name for abbr, name in US_STATES.items()
                if abbr != self.state_abbr.upper() and name.lower() not in self.state.lower()
            )
        self._other_states = [(name, _word_pattern(name)) for name in neighbors]

    # -----------------------------------------------------------------------
    # Text matching
    # -----------------------------------------------------------------------

    def validate_match(self, text: str, municipality: str, county: str | None = None) -> MatchResult:
        """Score how well ``text`` matches the requested municipality."""
        issues: list[str] = []
        score = 0
        lower = text.lower()
        core, kind = split_municipality_type(municipality)
        type_of = re.compile(
            r"\b(?:" + (kind or "|".join(MUNICIPALITY_TYPES)) + r")\s+of\s+" + re.escape(core),
            re.IGNORECASE,
        )

        if municipality.lower() in lower or (kind and type_of.search(text)):
            score += 30
        else:
            score -= 50
            issues.append(f"Municipality name {municipality!r} not found")

        has_state = bool(self._state_pattern.search(text))
        if has_state:
            score += 20
        else:
            score -= 30
            issues.append(f"No reference to {self.state}")

        if county:
            county_name = _county_name(county)
            if county_name.lower() in lower:
                score += 25
            else:
                score -= 10
                issues.append(f"County {county_name!r} not found")

        if not has_state:
            other = self._other_state_in(text, municipality, county)
            if other:
                issues.append(f"Content references {other}, not {self.state}")
                return MatchResult(is_match=False, confidence=0, issues=issues)

        if type_of.search(text):
            score += 15

        return MatchResult(is_match=score > 0, confidence=max(0, min(100, score)), issues=issues)

    def is_hard_mismatch(self, text: str, municipality: str | None = None, county: str | None = None) -> bool:
        """True when the text names another state and never names the target state."""
        if self._state_pattern.search(text):
            return False
        return self._other_state_in(text, municipality, county) is not None

    def _other_state_in(self, text: str, municipality: str | None, county: str | None) -> str | None:
        """First neighboring state named in ``text`` once the requested place names are removed.

        "Washington Township" or "Washington St." must not read as Washington state.
        """
        names = []
        if municipality:
            names += [municipality, split_municipality_type(municipality)[0]]
        if county:
            names.append(_county_name(county))
        for name in sorted(set(names), key=len, reverse=True):
            if name:
                text = _word_pattern(name).sub(" ", text)
        for state_name, pattern in self._other_states:
            if pattern.search(text):
                return state_name
        return None

    # -----------------------------------------------------------------------
    # URL scoring
    # -----------------------------------------------------------------------

    def score_url(self, url: str, municipality: str) -> int:
        """Authority score for a candidate URL. Higher is more trustworthy."""
        lower = url.lower()
        host = urlparse(lower).netloc
        abbr = self.state_abbr.lower()
        slug = slugify(municipality)
        compact = slug.replace("-", "")
        score = 0

        if slug and (slug in lower or compact in lower):
            score += 30

        if "ecode360.com" in host:
            score += 40
            if f"/{abbr}/{slug}" in lower or f"/{abbr}/{compact}" in lower:
                score += 30
        elif "municode.com" in host:
            score += 40
        elif any(domain in host for domain in CODE_PUBLISHER_DOMAINS):
            score += 35

        if host.endswith(".gov") or host.endswith(f".{abbr}.us"):
            score += 25
            if f"{compact}.{abbr}.us" in host or f"{slug}.{abbr}.us" in host:
                score += 40

        if f"/{abbr}/" in lower or slugify(self.state).replace("-", "") in lower.replace("-", ""):
            score += 15

        for segment in _OTHER_STATE_PATH.findall(urlparse(lower).path):
            if segment != abbr and segment.upper() in US_STATES:
                score -= 50
                break

        if urlparse(lower).path.endswith(".pdf"):
            score += 10

        return score

    def is_likely_ordinance_url(self, url: str) -> bool:
        """Code publishers, government pages about codes, and ordinance PDFs."""
        lower = url.lower()
        host = urlparse(lower).netloc
        path = urlparse(lower).path

        if any(domain in host for domain in CODE_PUBLISHER_DOMAINS):
            return True
        if (host.endswith(".gov") or host.endswith(f".{self.state_abbr.lower()}.us")) and any(
            word in path for word in ("ordinance", "code", "chapter")
        ):
            return True
        return path.endswith(".pdf") and ("ordinance" in path or "rent" in path)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def build_search_queries(self, municipality: str, county: str | None = None) -> list[str]:
        """Query reformulations, most specific first, without duplicates."""
        county_clause = f' "{county} County"' if county else ""
        abbr = self.state_abbr.lower()
        queries = [
            f'"{municipality}" "{self.state}" rent control ordinance',
            f'"{municipality}"{county_clause} "{self.state}" "rent control ordinance" full text',
            f'"{municipality}" {self.state} rent control ordinance site:ecode360.com OR site:municode.com',
            f'"{municipality}" {self.state} rent control ordinance site:.gov OR site:.{abbr}.us',
            f'"{municipality}" {self.state} rent control ordinance filetype:pdf',
        ]
        for kind in MUNICIPALITY_TYPES:
            queries.append(f'"{kind} of {municipality}" {self.state_abbr} rent control chapter')

        return list(dict.fromkeys(queries))

    def domain_allowlist(self) -> list[str]:
        return [".gov", f".{self.state_abbr.lower()}.us", *CODE_PUBLISHER_DOMAINS]


# ---------------------------------------------------------------------------
# Free-text extraction
# ---------------------------------------------------------------------------

_INFO_PATTERNS = (
    # "City of Newark, Essex County, New Jersey"
    re.compile(
        r"\b(City|Township|Borough|Town|Village)\s+of\s+([A-Z][\w.' -]+?),\s*([A-Z][\w.' -]+?)\s+County",
    ),
    # "Newark City, Essex County"
    re.compile(
        r"\b([A-Z][\w.' -]+?)\s+(City|Township|Borough|Town|Village),\s*([A-Z][\w.' -]+?)\s+County",
    ),
)


def extract_municipality_info(content: str, state: str = "NJ") -> MunicipalityInfo | None:
    """Pull "{Type} of {Name}, {County} County" style identity out of text."""
    match = _INFO_PATTERNS[0].search(content)
    if match:
        return MunicipalityInfo(
            name=match.group(2).strip(), county=match.group(3).strip(), state=state, type=match.group(1),
        )
    match = _INFO_PATTERNS[1].search(content)
    if match:
        return MunicipalityInfo(
            name=match.group(1).strip(), county=match.group(3).strip(), state=state, type=match.group(2),
        )
    return None
