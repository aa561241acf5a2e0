from .lookup import LookupEngine, ServerEntry, StateBlock
from .resolver import Resolver
from .servers import ServerStats

__all__ = ["LookupEngine", "Resolver", "ServerEntry", "ServerStats", "StateBlock"]
