"""
Archetype mining: corpus loading, segmentation, classification
orchestration, smoothing and path discovery.
"""

from .corpus import StoryRecord, load_corpus, parse_corpus, sample_stories, SAMPLING_STRATEGIES
from .segmentation import split_sentences, segment_story
from .naming import NamingRule, NAMING_RULES, FALLBACK_NAME, name_archetype
from .miner import ArchetypeMiner, MiningResult, StoryTrace, aggregate_paths, smooth_counts

__all__ = [
    'StoryRecord', 'load_corpus', 'parse_corpus', 'sample_stories', 'SAMPLING_STRATEGIES',
    'split_sentences', 'segment_story',
    'NamingRule', 'NAMING_RULES', 'FALLBACK_NAME', 'name_archetype',
    'ArchetypeMiner', 'MiningResult', 'StoryTrace', 'aggregate_paths', 'smooth_counts',
]
