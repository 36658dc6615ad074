"""
ElasticMQ Offline Configuration Management

This module loads the emulator settings from a serverless.yml style file.
The relevant part of the file looks like:

    provider:
      stage: dev
    custom:
      elasticmq:
        stages:
          - dev
        start:
          port: 9324
          noStart: false

Classes:
    ElasticMqSettings: the ``custom.elasticmq`` block
    Settings: main configuration class, holds the active stage and the block

Environment variables ELASTICMQ_PORT, ELASTICMQ_NO_START and ELASTICMQ_STAGE
override values read from the file.
"""

import os
from dataclasses import dataclass, field
from logging import getLogger

import yaml

from .errors import ConfigError

logger = getLogger(__name__)


DEFAULT_PORT = 9324
DEFAULT_STAGE = "dev"

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off", "")


def stype(obj):
    """Get the simple type name of an object.

    Example:
        >>> stype([1, 2, 3])
        'list'
    """
    return type(obj).__name__


class ServerlessLoader(yaml.SafeLoader):
    """Safe loader that accepts CloudFormation tags such as !Ref or !GetAtt.

    Tagged nodes are loaded as their plain scalar, list or mapping value.
    """


def _construct_tagged(loader, tag_suffix, node):
    if isinstance(node, yaml.MappingNode):
        return loader.construct_mapping(node, deep=True)
    if isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node, deep=True)
    return loader.construct_scalar(node)


ServerlessLoader.add_multi_constructor("!", _construct_tagged)


def parse_bool(name, value):
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} should be a boolean and not {value!r}")


@dataclass
class ElasticMqSettings:
    """The ``custom.elasticmq`` configuration block.

    Attributes:
        stages: stage names for which the emulator is started
        no_start: never start the emulator, regardless of stage
        port: port the emulator listens on, 9324 when not set
    """
    stages: list = field(default_factory=list)
    no_start: bool = False
    port: int = None

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"elasticmq config should be a mapping and not {stype(data)}")

        data = dict(data)
        start = data.pop("start", None) or {}
        if not isinstance(start, dict):
            raise ConfigError(f"elasticmq start should be a mapping and not {stype(start)}")
        start = dict(start)

        settings = cls()
        settings.stages = data.pop("stages", None) or []
        settings.no_start = data.pop("noStart", False)
        settings.port = data.pop("port", None)

        # values from the nested start block win over the flat ones
        if "noStart" in start:
            settings.no_start = start.pop("noStart")
        if "port" in start:
            settings.port = start.pop("port")

        if data:
            raise ConfigError(f"Unsupported elasticmq options: {list(data.keys())}")
        if start:
            raise ConfigError(f"Unsupported elasticmq start options: {list(start.keys())}")
        return settings

    @property
    def effective_port(self):
        return self.port or DEFAULT_PORT

    def validate(self):
        if not isinstance(self.stages, list):
            raise ConfigError(f"elasticmq stages should be list and not {stype(self.stages)}")

        for stage in self.stages:
            if not isinstance(stage, str):
                raise ConfigError(f"elasticmq stage names should be string and not {stype(stage)}")

        if not isinstance(self.no_start, bool):
            raise ConfigError(f"elasticmq noStart should be bool and not {stype(self.no_start)}")

        if self.port is not None:
            if isinstance(self.port, bool) or not isinstance(self.port, int):
                raise ConfigError(f"elasticmq port should be int and not {stype(self.port)}")
            if not 0 < self.port < 65536:
                raise ConfigError(f"elasticmq port should be in range 1-65535, got {self.port}")


class Settings:
    DEFAULT_LOG_LEVEL = "info"

    def __init__(self):
        self.elasticmq = ElasticMqSettings()
        self.stage = DEFAULT_STAGE
        self.settings_file = ""
        self.log_level = Settings.DEFAULT_LOG_LEVEL
        self.debug_log_level = False
        self.http_host = ""
        self.http_port = 0

    def load(self, settings_file, stage=None):
        if not os.path.exists(settings_file):
            raise ConfigError(f"config file {settings_file} not found")

        with open(settings_file, "r") as f:
            data = yaml.load(f, Loader=ServerlessLoader) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"config file {settings_file} should contain a mapping")

        self.settings_file = settings_file

        provider = data.get("provider") or {}
        if not isinstance(provider, dict):
            raise ConfigError(f"provider should be a mapping and not {stype(provider)}")
        self.stage = provider.get("stage") or DEFAULT_STAGE

        custom = data.get("custom") or {}
        if not isinstance(custom, dict):
            raise ConfigError(f"custom should be a mapping and not {stype(custom)}")
        self.elasticmq = ElasticMqSettings.from_dict(custom.get("elasticmq"))

        self.apply_env_overrides()
        if stage:
            self.stage = stage

        if isinstance(self.stage, str) and "${" in self.stage:
            logger.warning(
                f"provider stage {self.stage!r} contains an unresolved serverless variable, "
                f"pass --stage or set ELASTICMQ_STAGE"
            )
        self.validate()

    def apply_env_overrides(self, environ=None):
        environ = os.environ if environ is None else environ

        if "ELASTICMQ_STAGE" in environ:
            self.stage = environ["ELASTICMQ_STAGE"]

        if "ELASTICMQ_PORT" in environ:
            try:
                self.elasticmq.port = int(environ["ELASTICMQ_PORT"])
            except ValueError:
                raise ConfigError(
                    f"ELASTICMQ_PORT should be an integer, got {environ['ELASTICMQ_PORT']!r}"
                )

        if "ELASTICMQ_NO_START" in environ:
            self.elasticmq.no_start = parse_bool(
                "ELASTICMQ_NO_START", environ["ELASTICMQ_NO_START"],
            )

    def validate_log_level(self):
        if self.log_level not in ["critical", "error", "warning", "info", "debug"]:
            raise ConfigError(f"wrong log level {self.log_level}")
        if self.log_level == "debug":
            self.debug_log_level = True

    def validate(self):
        if not isinstance(self.stage, str):
            raise ConfigError(f"provider stage should be string and not {stype(self.stage)}")
        self.elasticmq.validate()
        self.validate_log_level()
        if not isinstance(self.http_host, str):
            raise ConfigError(f"http_host should be string and not {stype(self.http_host)}")
        if not isinstance(self.http_port, int):
            raise ConfigError(f"http_port should be int and not {stype(self.http_port)}")
