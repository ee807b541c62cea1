"""
notion-v3 client: the I/O layer around v3engine.

  services.http_client  transport (deadlines, error classification, streaming)
  services.ndjson       line-delimited JSON decoder
  services.ai           AI conversations
  services.workspace    pages, children, comments, backlinks, history
  config                environment settings and the stored session
"""

from v3client.config import Config, configure_logging, settings
from v3client.errors import ConfigError, ModelNotFound, ProtocolError, RequestTimeout, V3Error
from v3client.services.ai import AiService, resolve_model
from v3client.services.http_client import V3HttpClient
from v3client.services.workspace import WorkspaceService

__all__ = [
    "Config",
    "configure_logging",
    "settings",
    "ConfigError",
    "ModelNotFound",
    "ProtocolError",
    "RequestTimeout",
    "V3Error",
    "AiService",
    "resolve_model",
    "V3HttpClient",
    "WorkspaceService",
]
