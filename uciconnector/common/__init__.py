# uciconnector/common - platform helpers and typed configuration

from uciconnector.common.config import ConnectorConfig, load_config
from uciconnector.common.platform import supports_nonblocking_pipes

__all__ = ["ConnectorConfig", "load_config", "supports_nonblocking_pipes"]
