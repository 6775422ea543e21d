from .config import Config, load_yaml_config
from .settings import Settings, get_settings

__all__ = ["Config", "Settings", "get_settings", "load_yaml_config"]
