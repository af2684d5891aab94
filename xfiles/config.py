"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Optional

import xfiles.constants as constants
from xfiles.logger import log


@dataclass
class RemoteConfig:
    """Configuration variables related to the remote host."""

    base_url: str = "https://api.twitter.com"
    timeout: float = 10.0

    max_segment: int = constants.MAX_SEGMENT
    page_size: int = constants.REPLY_PAGE_SIZE

    # 300 requests per 15 minutes
    rate_limit_requests: int = 300
    rate_limit_window: float = 15 * 60.0

    @staticmethod
    def load(section: SectionProxy) -> RemoteConfig:
        """Load overridden variables from a section within a config file."""
        config = RemoteConfig()

        config.base_url = section.get("base_url", fallback=config.base_url)
        config.timeout = section.getfloat("timeout", fallback=config.timeout)

        config.max_segment = section.getint("max_segment", fallback=config.max_segment)
        config.page_size = section.getint("page_size", fallback=config.page_size)

        config.rate_limit_requests = section.getint(
            "rate_limit_requests", fallback=config.rate_limit_requests
        )
        config.rate_limit_window = section.getfloat(
            "rate_limit_window", fallback=config.rate_limit_window
        )

        return config


@dataclass
class RetryConfig:
    """Configuration variables related to retrying failed remote calls."""

    max_attempts: int = 3
    initial_backoff: float = 0.1
    max_backoff: float = 30.0
    multiplier: float = 2.0

    @staticmethod
    def load(section: SectionProxy) -> RetryConfig:
        """Load overridden variables from a section within a config file."""
        config = RetryConfig()

        config.max_attempts = section.getint(
            "max_attempts", fallback=config.max_attempts
        )
        config.initial_backoff = section.getfloat(
            "initial_backoff", fallback=config.initial_backoff
        )
        config.max_backoff = section.getfloat(
            "max_backoff", fallback=config.max_backoff
        )
        config.multiplier = section.getfloat("multiplier", fallback=config.multiplier)

        return config


@dataclass
class IndexConfig:
    """Configuration variables related to the local index database."""

    # Defaults to a database named after the user in the working directory
    path: Optional[str] = None

    pool_size: int = 5

    @staticmethod
    def load(section: SectionProxy) -> IndexConfig:
        """Load overridden variables from a section within a config file."""
        config = IndexConfig()

        path = section.get("path", fallback=None)
        if path:
            config.path = path if path == ":memory:" else os.path.expanduser(path)

        config.pool_size = section.getint("pool_size", fallback=config.pool_size)

        return config


@dataclass
class ContentConfig:
    """Configuration variables related to the encoding of posted content."""

    envelope: bool = False

    @staticmethod
    def load(section: SectionProxy) -> ContentConfig:
        """Load overridden variables from a section within a config file."""
        config = ContentConfig()

        config.envelope = section.getboolean("envelope", fallback=config.envelope)

        return config


@dataclass
class Config:
    """Configuration variables."""

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    content: ContentConfig = field(default_factory=ContentConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "remote" in parser:
                config.remote = RemoteConfig.load(parser["remote"])
            if "retry" in parser:
                config.retry = RetryConfig.load(parser["retry"])
            if "index" in parser:
                config.index = IndexConfig.load(parser["index"])
            if "content" in parser:
                config.content = ContentConfig.load(parser["content"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config
