"""Context object shared across worker threads."""

from dataclasses import dataclass

from wikiserver.bootstrap.config import ServerConfig
from wikiserver.domain.http_types import Handler
from wikiserver.lifecycle.state import ServerLifecycle


@dataclass
class WorkerContext:
    """Dependencies shared across handler threads."""

    handler: Handler
    lifecycle: ServerLifecycle
    config: ServerConfig
