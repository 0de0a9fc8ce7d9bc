from .errors import (
    CacheError,
    EmptyResult,
    InvalidInput,
    ParseError,
    PipelineError,
    RateLimited,
    SetupError,
    TransportError,
    UpstreamError,
)
from .models import Description, EvaluationRecord, ListingRef, RankedReport, ResolutionOutcome
from .rate_gate import RateGate
from .resolution_pool import ResolutionPool
from .resolver import DescriptionResolver
from .retry import RetryPolicy, linear_backoff
from .scoring import ScoringPool, clean_response, extract_score, rank_evaluations
from .state import FileDescriptionCache, MemoryDescriptionCache, RedisDescriptionCache, cache_key

__all__ = [
    "CacheError",
    "EmptyResult",
    "InvalidInput",
    "ParseError",
    "PipelineError",
    "RateLimited",
    "SetupError",
    "TransportError",
    "UpstreamError",
    "Description",
    "EvaluationRecord",
    "ListingRef",
    "RankedReport",
    "ResolutionOutcome",
    "RateGate",
    "ResolutionPool",
    "DescriptionResolver",
    "RetryPolicy",
    "linear_backoff",
    "ScoringPool",
    "clean_response",
    "extract_score",
    "rank_evaluations",
    "FileDescriptionCache",
    "MemoryDescriptionCache",
    "RedisDescriptionCache",
    "cache_key",
]
