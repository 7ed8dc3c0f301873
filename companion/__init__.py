"""Companion chat client: mood engine, persona responder, single-flight scheduler.

    engine     companion.mood       MoodEngine, transition(), tier_of()
    queue      companion.scheduler  Scheduler, QueueCleared
    persona    companion.persona    PersonaResponder
    remote     companion.gateway    HttpGateway, EchoGateway, RemoteCallFailed
    storage    companion.storage    Store, StoreUnavailable
    session    companion.session    Companion
"""

# Re-export the main entry points so `from companion import Companion` works.

from .gateway import EchoGateway, HttpGateway, RemoteCallFailed  # noqa: F401
from .mood import MoodEngine, tier_of, transition  # noqa: F401
from .persona import PersonaResponder  # noqa: F401
from .scheduler import QueueCleared, Scheduler  # noqa: F401
from .session import Companion  # noqa: F401
from .storage import Store, StoreUnavailable  # noqa: F401
