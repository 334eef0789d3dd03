"""Two-stage conversation pipeline."""

from pixel.pipeline.backend import ChatBackend, ChatReply, RepublicBackend
from pixel.pipeline.orchestrator import SessionOrchestrator, SessionPhase, SessionState
from pixel.pipeline.stages import ConversationStage, Decision, DecisionStage

__all__ = [
    "ChatBackend",
    "ChatReply",
    "ConversationStage",
    "Decision",
    "DecisionStage",
    "RepublicBackend",
    "SessionOrchestrator",
    "SessionPhase",
    "SessionState",
]
