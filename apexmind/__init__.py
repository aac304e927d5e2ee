"""
Apexmind - personality-driven decision engine for a game's predator agent.

Decides what the computer-controlled agent does next, reuses previous answers
when the situation is similar enough, remembers every opponent it has met, and
degrades from live inference to cached to local synthesis without the caller
noticing a contract change.

All dependencies injected by the user: inference client, persistence backend,
clock and RNG.
"""

__version__ = "0.1.0"

# Main façade
from .engine import DecisionEngine

# Components
from .cache import ResponseCache, fingerprint, similarity
from .usage import ModeController
from .memory import MemoryStore, classify, detect_circular_movement, grudge_level
from .synthesizer import DecisionSynthesizer
from .scheduling import TaskScheduler

# Boundaries
from .inference import InferenceClient, InferenceError, LLMInferenceClient
from .persistence import PersistenceStrategy, InMemoryPersistence, JsonPersistence
from .prompts import PromptLibrary, PromptTemplate, DEFAULT_PROMPTS

# Core schemas
from .schemas import (
    Point,
    Opponent,
    DecisionContext,
    Decision,
    OpponentMemory,
    NotableMoment,
    CircularMovementPattern,
    HidingSpotPattern,
    EscapeRoutePattern,
    SituationAnalysis,
    ContextFingerprint,
    CachedResponse,
    CacheStats,
    UsageStats,
)

__all__ = [
    # Main class
    "DecisionEngine",
    # Components
    "ResponseCache",
    "fingerprint",
    "similarity",
    "ModeController",
    "MemoryStore",
    "classify",
    "detect_circular_movement",
    "grudge_level",
    "DecisionSynthesizer",
    "TaskScheduler",
    # Boundaries
    "InferenceClient",
    "InferenceError",
    "LLMInferenceClient",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    "PromptLibrary",
    "PromptTemplate",
    "DEFAULT_PROMPTS",
    # Context and decision schemas
    "Point",
    "Opponent",
    "DecisionContext",
    "Decision",
    "SituationAnalysis",
    # Memory schemas
    "OpponentMemory",
    "NotableMoment",
    "CircularMovementPattern",
    "HidingSpotPattern",
    "EscapeRoutePattern",
    # Cache and usage schemas
    "ContextFingerprint",
    "CachedResponse",
    "CacheStats",
    "UsageStats",
]
