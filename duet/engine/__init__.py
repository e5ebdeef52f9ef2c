from duet.engine.gateway import ConversationEngine, PollGateway
from duet.engine.scheduler import TurnScheduler

__all__ = ["ConversationEngine", "PollGateway", "TurnScheduler"]
