"""Configuration loading for nostr-backup."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SOURCE_RELAYS = [
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
    "wss://nostr.mom",
    "wss://relay.primal.net",
]


@dataclass
class ProxyConfig:
    """Local Tor SOCKS proxy used for .onion relays."""

    host: str = "127.0.0.1"
    port: int = 9050
    probe_timeout_seconds: float = 5.0
    verify_tls: bool = False

    @property
    def url(self) -> str:
        return f"socks5://{self.host}:{self.port}"


@dataclass
class RelaysConfig:
    sources: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_RELAYS))
    target: str = ""


@dataclass
class FilterConfig:
    kinds: list[int] = field(default_factory=lambda: [1, 6, 7])
    days: int = 30


@dataclass
class PublishConfig:
    batch_size: int = 10
    delay_ms: int = 1000
    ack_timeout_seconds: float = 8.0


@dataclass
class TimeoutsConfig:
    standard_query_seconds: float = 10.0
    anonymized_query_seconds: float = 15.0
    anonymized_publish_seconds: float = 15.0
    close_grace_seconds: float = 2.0


@dataclass
class Config:
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    relays: RelaysConfig = field(default_factory=RelaysConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with NOSTR_BACKUP_ prefix."""
    return os.environ.get(f"NOSTR_BACKUP_{key}", default)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Proxy overrides
    if host := _get_env("PROXY_HOST"):
        config.proxy.host = host
    if port := _get_env("PROXY_PORT"):
        config.proxy.port = int(port)
    if verify := _get_env("PROXY_VERIFY_TLS"):
        config.proxy.verify_tls = verify.lower() in ("true", "1", "yes")

    # Relay overrides
    if target := _get_env("TARGET_RELAY"):
        config.relays.target = target
    if sources := _get_env("SOURCE_RELAYS"):
        config.relays.sources = _split_list(sources)

    # Filter overrides
    if kinds := _get_env("KINDS"):
        config.filter.kinds = [int(k) for k in _split_list(kinds)]
    if days := _get_env("DAYS"):
        config.filter.days = int(days)

    # Publish overrides
    if batch_size := _get_env("BATCH_SIZE"):
        config.publish.batch_size = int(batch_size)
    if delay := _get_env("BATCH_DELAY_MS"):
        config.publish.delay_ms = int(delay)
    if ack_timeout := _get_env("ACK_TIMEOUT"):
        config.publish.ack_timeout_seconds = float(ack_timeout)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path).expanduser()
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse proxy config
            if "proxy" in data:
                proxy_data = data["proxy"]
                config.proxy = ProxyConfig(
                    host=proxy_data.get("host", config.proxy.host),
                    port=proxy_data.get("port", config.proxy.port),
                    probe_timeout_seconds=proxy_data.get(
                        "probe_timeout_seconds", config.proxy.probe_timeout_seconds
                    ),
                    verify_tls=proxy_data.get("verify_tls", config.proxy.verify_tls),
                )

            # Parse relays config
            if "relays" in data:
                relays_data = data["relays"]
                config.relays = RelaysConfig(
                    sources=list(relays_data.get("sources", config.relays.sources)),
                    target=relays_data.get("target", config.relays.target),
                )

            # Parse filter config
            if "filter" in data:
                filter_data = data["filter"]
                config.filter = FilterConfig(
                    kinds=list(filter_data.get("kinds", config.filter.kinds)),
                    days=filter_data.get("days", config.filter.days),
                )

            # Parse publish config
            if "publish" in data:
                publish_data = data["publish"]
                config.publish = PublishConfig(
                    batch_size=publish_data.get("batch_size", config.publish.batch_size),
                    delay_ms=publish_data.get("delay_ms", config.publish.delay_ms),
                    ack_timeout_seconds=publish_data.get(
                        "ack_timeout_seconds", config.publish.ack_timeout_seconds
                    ),
                )

            # Parse timeouts config
            if "timeouts" in data:
                timeouts_data = data["timeouts"]
                config.timeouts = TimeoutsConfig(
                    standard_query_seconds=timeouts_data.get(
                        "standard_query_seconds", config.timeouts.standard_query_seconds
                    ),
                    anonymized_query_seconds=timeouts_data.get(
                        "anonymized_query_seconds", config.timeouts.anonymized_query_seconds
                    ),
                    anonymized_publish_seconds=timeouts_data.get(
                        "anonymized_publish_seconds",
                        config.timeouts.anonymized_publish_seconds,
                    ),
                    close_grace_seconds=timeouts_data.get(
                        "close_grace_seconds", config.timeouts.close_grace_seconds
                    ),
                )

    # Apply environment variable overrides
    return _apply_env_overrides(config)
