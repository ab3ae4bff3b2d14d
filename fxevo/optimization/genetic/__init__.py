"""
Genetic machinery: the DNA codec and fitness scaling.

The Factory lives in ``fxevo.optimization.genetic.factory``; it depends on
the backtesting package and is imported from there directly.
"""

from .genome import (
    InfluencerGene,
    InvestorGenome,
    dna_hash,
    format_influencer_dna,
    format_investor_dna,
    parse_influencer_dna,
    parse_investor_dna,
    split_influencer_dnas,
)
from .fitness import BonusPolicy, NoBonus, StepBonusPolicy, bonus_policy_from_config

__all__ = [
    "InfluencerGene",
    "InvestorGenome",
    "dna_hash",
    "format_influencer_dna",
    "format_investor_dna",
    "parse_influencer_dna",
    "parse_investor_dna",
    "split_influencer_dnas",
    "BonusPolicy",
    "NoBonus",
    "StepBonusPolicy",
    "bonus_policy_from_config",
]
