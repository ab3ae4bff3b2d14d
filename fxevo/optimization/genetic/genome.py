"""
DNA codec for Investors and their Influencers.

An Investor's genome is stored and exchanged as a single line of text:

    {Investor;ID=<sha256>;Strategy=MajorityRules;InvW1=0.6000;InvW2=0.4000;
     Influencers=[{LSMInfluencer,Delta1=-12,Delta2=-3,Metric=CPI}|...]}

(wrapped here for readability). Influencers are always serialised in Metric
order, so two Investors holding the same Influencer set encode, and hash,
identically no matter how they were assembled. The ID is the sha256 of the
encoded form without the ID field.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ...core.exceptions import MalformedDNAError

INVESTOR_TAG = "Investor"
INFLUENCER_SUBCLASSES = ("LSMInfluencer",)

KEY_ID = "ID"
KEY_STRATEGY = "Strategy"
KEY_W1 = "InvW1"
KEY_W2 = "InvW2"
KEY_INFLUENCERS = "Influencers"
KEY_DELTA1 = "Delta1"
KEY_DELTA2 = "Delta2"
KEY_METRIC = "Metric"


def parse_value(raw: str) -> Any:
    """Type a DNA value as int, else float, else string with quotes stripped."""
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        pass
    return raw.strip('"')


def _unwrap(dna: str, open_char: str, close_char: str) -> str:
    text = dna.strip()
    if len(text) < 2 or not text.startswith(open_char) or not text.endswith(close_char):
        raise MalformedDNAError("invalid DNA format", details=dna)
    return text[1:-1]


def parse_investor_dna(dna: str) -> Dict[str, Any]:
    """
    Decode an Investor DNA string into a map of its top-level fields.

    The Influencers value is returned as the raw bracketed string; use
    split_influencer_dnas and parse_influencer_dna to go further.

    Raises:
        MalformedDNAError: If the braces are missing or a key is empty
    """
    body = _unwrap(dna, "{", "}")
    values: Dict[str, Any] = {}
    for segment in body.split(";"):
        if "=" not in segment:
            # class tag
            continue
        key, raw = segment.split("=", 1)
        key = key.strip()
        if not key:
            raise MalformedDNAError("empty key in investor DNA", details=segment)
        raw = raw.strip()
        if key in (KEY_INFLUENCERS, KEY_ID):
            values[key] = raw
        else:
            values[key] = parse_value(raw)
    return values


def split_influencer_dnas(raw: str) -> List[str]:
    """Split ``"[{a}|{b}]"`` into ``["{a}", "{b}"]``."""
    body = _unwrap(raw, "[", "]").strip()
    if not body:
        return []
    return [part.strip() for part in body.split("|")]


def parse_influencer_dna(dna: str) -> Tuple[str, Dict[str, Any]]:
    """
    Decode one Influencer DNA string.

    Returns:
        (subclass, {key: typed value})

    Raises:
        MalformedDNAError: On missing braces, an unknown subclass or a token
            that is not ``key=value``
    """
    body = _unwrap(dna, "{", "}")
    tokens = [t.strip() for t in body.split(",")]
    subclass = tokens[0]
    if subclass not in INFLUENCER_SUBCLASSES:
        raise MalformedDNAError(f"unknown influencer subclass: {subclass}", details=dna)

    values: Dict[str, Any] = {}
    for token in tokens[1:]:
        key, sep, raw = token.partition("=")
        key = key.strip()
        if not sep or not key:
            raise MalformedDNAError(f"influencer attribute is not key=value: {token!r}", details=dna)
        values[key] = parse_value(raw.strip())
    return subclass, values


def format_influencer_dna(subclass: str, delta1: int, delta2: int, metric: str) -> str:
    return f"{{{subclass},{KEY_DELTA1}={delta1},{KEY_DELTA2}={delta2},{KEY_METRIC}={metric}}}"


def format_influencer_fields(subclass: str, values: Mapping[str, Any]) -> str:
    """Encode an Influencer from an arbitrary attribute map (used by crossover)."""
    parts = [subclass] + [f"{key}={value}" for key, value in values.items()]
    return "{" + ",".join(parts) + "}"


def _metric_of(influencer_dna: str) -> str:
    _, values = parse_influencer_dna(influencer_dna)
    return str(values.get(KEY_METRIC, ""))


def sort_influencer_dnas(influencer_dnas: List[str]) -> List[str]:
    """Canonical Influencer order: by Metric, then by the full string."""
    return sorted(influencer_dnas, key=lambda d: (_metric_of(d), d))


def dna_hash(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def format_investor_dna(strategy: str, w1: float, w2: float, influencer_dnas: List[str],
                        include_id: bool = True) -> str:
    """
    Encode an Investor in canonical form.

    Args:
        strategy: Strategy name, e.g. "MajorityRules"
        w1: Profit weight
        w2: Correctness weight
        influencer_dnas: Influencer DNA strings, in any order
        include_id: Insert ``ID=<hash>`` after the Investor tag

    Returns:
        The DNA string
    """
    influencers = "|".join(sort_influencer_dnas(list(influencer_dnas)))
    fields = (f"{KEY_STRATEGY}={strategy};{KEY_W1}={w1:6.4f};{KEY_W2}={w2:6.4f};"
              f"{KEY_INFLUENCERS}=[{influencers}]")
    body = f"{{{INVESTOR_TAG};{fields}}}"
    if not include_id:
        return body
    return f"{{{INVESTOR_TAG};{KEY_ID}={dna_hash(body)};{fields}}}"


@dataclass(frozen=True)
class InfluencerGene:
    """Decoded Influencer DNA."""
    metric: str
    delta1: Optional[int] = None
    delta2: Optional[int] = None
    subclass: str = INFLUENCER_SUBCLASSES[0]

    @classmethod
    def from_dna(cls, dna: str) -> "InfluencerGene":
        subclass, values = parse_influencer_dna(dna)
        metric = values.get(KEY_METRIC)
        if not isinstance(metric, str) or not metric:
            raise MalformedDNAError("influencer DNA has no Metric", details=dna)
        delta1 = values.get(KEY_DELTA1)
        delta2 = values.get(KEY_DELTA2)
        for name, value in ((KEY_DELTA1, delta1), (KEY_DELTA2, delta2)):
            if value is not None and not isinstance(value, int):
                raise MalformedDNAError(f"{name} must be an integer", details=dna)
        return cls(metric=metric, delta1=delta1, delta2=delta2, subclass=subclass)


@dataclass
class InvestorGenome:
    """
    Decoded Investor DNA.

    ``id`` is the ID carried by the decoded string, if any. It is never
    trusted: ``hash()`` recomputes identity from the canonical form.
    """
    strategy: str
    w1: float
    w2: float
    influencers: List[str] = field(default_factory=list)
    id: Optional[str] = None

    @classmethod
    def from_dna(cls, dna: str) -> "InvestorGenome":
        """
        Raises:
            MalformedDNAError: If a required field is missing or mistyped
        """
        values = parse_investor_dna(dna)
        missing = [k for k in (KEY_STRATEGY, KEY_W1, KEY_W2, KEY_INFLUENCERS) if k not in values]
        if missing:
            raise MalformedDNAError(f"investor DNA is missing {missing}", details=dna)

        w1, w2 = values[KEY_W1], values[KEY_W2]
        if not isinstance(w1, (int, float)) or not isinstance(w2, (int, float)):
            raise MalformedDNAError("investor weights must be numeric", details=dna)

        influencers = split_influencer_dnas(values[KEY_INFLUENCERS])
        for influencer in influencers:
            parse_influencer_dna(influencer)

        return cls(
            strategy=str(values[KEY_STRATEGY]),
            w1=float(w1),
            w2=float(w2),
            influencers=influencers,
            id=values.get(KEY_ID)
        )

    def to_dna(self, include_id: bool = True) -> str:
        return format_investor_dna(self.strategy, self.w1, self.w2, self.influencers, include_id)

    def hash(self) -> str:
        return dna_hash(self.to_dna(include_id=False))
