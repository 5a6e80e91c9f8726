"""
Configuration management for PeerLink.

Settings live in ``config.json`` inside a configuration directory
(``~/.peerlink`` by default). Values present in the file are merged over
DEFAULT_CONFIG, and a few environment variables override both.
"""

import copy
import ipaddress
import json
import os
import socket
from typing import Any, Dict, Optional


class ConfigError(Exception):
    """Raised when configuration operations fail."""
    pass


DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    'network': {
        'bind_address': '0.0.0.0',
        'default_port': 0,  # any available port
        'family': 'ipv4',
        'max_datagram_size': 65507,
    },
    'dispatch': {
        'workers': 8,
        'join_timeout': 1.0,  # seconds
    },
}

# Environment variable -> (section, key, converter)
ENV_OVERRIDES = {
    'PEERLINK_BIND_ADDRESS': ('network', 'bind_address', str),
    'PEERLINK_PORT': ('network', 'default_port', int),
    'PEERLINK_DISPATCH_WORKERS': ('dispatch', 'workers', int),
}

_FAMILIES = {
    'ipv4': socket.AF_INET,
    'ipv6': socket.AF_INET6,
}

# Bind address used for a family when none is configured
_WILDCARDS = {
    'ipv4': '0.0.0.0',
    'ipv6': '::',
}


class PeerlinkConfig:
    """
    Configuration manager for PeerLink.
    """

    CONFIG_FILE = "config.json"

    def __init__(self, config_dir: Optional[str] = None, use_env: bool = True):
        """
        Initialize configuration.

        Args:
            config_dir: Directory for configuration files. Defaults to ~/.peerlink/
            use_env: Apply PEERLINK_* environment overrides

        Raises:
            ConfigError: If the configuration file or an override is invalid
        """
        if config_dir is None:
            config_dir = os.path.expanduser("~/.peerlink")

        self.config_dir = config_dir
        self.config_path = os.path.join(config_dir, self.CONFIG_FILE)
        self.settings = copy.deepcopy(DEFAULT_CONFIG)
        self._explicit = set()

        if os.path.exists(self.config_path):
            self._merge(self._read_file())
        if use_env:
            self._apply_env()
        self._follow_family()
        self.validate()

    @classmethod
    def defaults(cls) -> "PeerlinkConfig":
        """Configuration with built-in defaults only (no file, no environment)."""
        config = cls.__new__(cls)
        config.config_dir = None
        config.config_path = None
        config.settings = copy.deepcopy(DEFAULT_CONFIG)
        config._explicit = set()
        return config

    def _read_file(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {self.config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a JSON object")
        return data

    def _merge(self, data: Dict[str, Any]) -> None:
        for section, values in data.items():
            if section not in self.settings:
                raise ConfigError(f"Unknown configuration section: {section}")
            if not isinstance(values, dict):
                raise ConfigError(f"Section {section} must be an object")
            for key, value in values.items():
                if key not in self.settings[section]:
                    raise ConfigError(f"Unknown configuration key: {section}.{key}")
                self.settings[section][key] = value
                self._explicit.add((section, key))

    def _apply_env(self) -> None:
        for var, (section, key, convert) in ENV_OVERRIDES.items():
            raw = os.environ.get(var)
            if raw is None:
                continue
            try:
                self.settings[section][key] = convert(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {var}: {raw!r}") from e
            self._explicit.add((section, key))

    def _follow_family(self) -> None:
        network = self.settings['network']
        if ('network', 'bind_address') not in self._explicit and network['family'] in _WILDCARDS:
            network['bind_address'] = _WILDCARDS[network['family']]

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: If any setting is out of range
        """
        network = self.settings['network']
        dispatch = self.settings['dispatch']

        port = network['default_port']
        if not isinstance(port, int) or not 0 <= port <= 0xFFFF:
            raise ConfigError(f"network.default_port out of range: {port!r}")
        if network['family'] not in _FAMILIES:
            raise ConfigError(f"network.family must be one of {sorted(_FAMILIES)}")
        self._check_bind_address(network['bind_address'], network['family'])
        size = network['max_datagram_size']
        if not isinstance(size, int) or not 1 <= size <= 65527:
            raise ConfigError(f"network.max_datagram_size out of range: {size!r}")
        workers = dispatch['workers']
        if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
            raise ConfigError(f"dispatch.workers must be a positive integer: {workers!r}")
        timeout = dispatch['join_timeout']
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool):
            raise ConfigError(f"dispatch.join_timeout must be a number: {timeout!r}")
        if timeout < 0:
            raise ConfigError("dispatch.join_timeout must not be negative")

    @staticmethod
    def _check_bind_address(address: Any, family: str) -> None:
        if not isinstance(address, str) or not address:
            raise ConfigError(f"network.bind_address must be a host or IP address: {address!r}")
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            return  # host name, resolved at bind time
        expected = 4 if family == 'ipv4' else 6
        if ip.version != expected:
            raise ConfigError(
                f"network.bind_address {address} is not an {family} address"
            )

    def get(self, section: str, key: str) -> Any:
        """
        Get a configuration value.

        Raises:
            ConfigError: If the section or key does not exist
        """
        try:
            return self.settings[section][key]
        except KeyError:
            raise ConfigError(f"Unknown configuration key: {section}.{key}")

    def set(self, section: str, key: str, value: Any) -> None:
        """
        Set a configuration value and re-validate.

        Changing network.family also moves an unset bind address to the new
        family's wildcard address.
        """
        if key not in self.settings.get(section, {}):
            raise ConfigError(f"Unknown configuration key: {section}.{key}")
        previous = copy.deepcopy(self.settings)
        previous_explicit = set(self._explicit)
        self.settings[section][key] = value
        self._explicit.add((section, key))
        try:
            self._follow_family()
            self.validate()
        except ConfigError:
            self.settings = previous
            self._explicit = previous_explicit
            raise

    @property
    def address_family(self) -> int:
        return _FAMILIES[self.settings['network']['family']]

    def save(self) -> None:
        """
        Write the current settings to config.json.

        Raises:
            ConfigError: If there is no config directory or writing fails
        """
        if self.config_dir is None:
            raise ConfigError("Default configuration has no config directory")
        try:
            os.makedirs(self.config_dir, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.settings, f, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration: {e}") from e

    def exists(self) -> bool:
        """Check if a configuration file exists."""
        return self.config_path is not None and os.path.exists(self.config_path)
