"""Route configuration and YAML application config for serve-s3."""

import os
import re
from collections.abc import Callable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from serve_s3.disposition import DEFAULT_MODE, DispositionMode, mode_for_method
from serve_s3.resolvers import as_config_value

_MODE_METHODS = ("get", "post")

# 10 MiB, the payload cap of the original upload handler
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_EMPTY_MAP: Mapping[str, Any] = MappingProxyType({})


def _compile_matchers(value: Any, *, allow_none: bool) -> tuple[Any, ...] | None:
    """Normalise an allow-list or ignore-list.

    Entries may be strings, compiled regexes, ``{"pattern": "..."}`` mappings
    (the YAML spelling of a regex) and, when ``allow_none`` is set, None.
    """
    if value is None:
        return None
    if isinstance(value, (str, re.Pattern)):
        value = [value]

    matchers: list[Any] = []
    for entry in value:
        if isinstance(entry, dict) and set(entry) == {"pattern"}:
            entry = re.compile(entry["pattern"])
        if entry is None and allow_none:
            matchers.append(entry)
        elif isinstance(entry, (str, re.Pattern)):
            matchers.append(entry)
        else:
            raise ValueError(f"unsupported matcher entry: {entry!r}")
    return tuple(matchers)


class RouteConfig(BaseModel):
    """Immutable per-route configuration, validated once at registration.

    ``bucket``, ``key`` and ``content_type`` accept a literal string or a
    function ``fn(request, context)`` (sync or async); ``filename`` accepts
    a function only. All four are stored as ``Literal``/``Resolver``
    variants.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    bucket: Any
    key: Any = None
    mode: DispositionMode | Mapping[str, DispositionMode] = DEFAULT_MODE
    filename: Any = None
    content_type: Any = None
    override_content_types: Mapping[str, str] = Field(default_factory=lambda: _EMPTY_MAP)
    allowed_content_types: tuple[Any, ...] | None = None
    ignored_form_keys: tuple[Any, ...] | None = None
    random_post_keys: bool = False
    max_upload_bytes: int | None = Field(default=DEFAULT_MAX_UPLOAD_BYTES, gt=0)
    on_response: Callable[..., Any] | None = None

    # storage connection
    region: str = "us-east-1"
    access_key_id: str | None = Field(default_factory=lambda: os.environ.get("AWS_ACCESS_KEY_ID"))
    secret_access_key: str | None = Field(
        default_factory=lambda: os.environ.get("AWS_SECRET_ACCESS_KEY")
    )
    ssl_enabled: bool = True
    endpoint_url: str | None = None
    path_style: bool = False
    client_options: Mapping[str, Any] = Field(default_factory=lambda: _EMPTY_MAP)
    storage: Any = None

    @field_validator("bucket", mode="before")
    @classmethod
    def _check_bucket(cls, value: Any) -> Any:
        if value is None or value == "":
            raise ValueError('"bucket" is required')
        return as_config_value(value)

    @field_validator("key", "content_type", mode="before")
    @classmethod
    def _check_literal_or_resolver(cls, value: Any) -> Any:
        return as_config_value(value)

    @field_validator("filename", mode="before")
    @classmethod
    def _check_filename(cls, value: Any) -> Any:
        return as_config_value(value, literal_types=())

    @field_validator("mode", mode="before")
    @classmethod
    def _check_mode(cls, value: Any) -> Any:
        if value is False:
            return DispositionMode.OFF
        if isinstance(value, Mapping):
            unknown = set(k.lower() for k in value) - set(_MODE_METHODS)
            if unknown:
                raise ValueError(f"unsupported mode method(s): {', '.join(sorted(unknown))}")
            return {
                k.lower(): DispositionMode.OFF if v is False else v for k, v in value.items()
            }
        return value

    @field_validator("mode", "override_content_types", "client_options")
    @classmethod
    def _freeze_mappings(cls, value: Any) -> Any:
        if isinstance(value, Mapping) and not isinstance(value, MappingProxyType):
            return MappingProxyType(dict(value))
        return value

    @field_validator("allowed_content_types", mode="before")
    @classmethod
    def _check_allowed_content_types(cls, value: Any) -> Any:
        return _compile_matchers(value, allow_none=True)

    @field_validator("ignored_form_keys", mode="before")
    @classmethod
    def _check_ignored_form_keys(cls, value: Any) -> Any:
        return _compile_matchers(value, allow_none=False)

    @field_validator("storage")
    @classmethod
    def _check_storage(cls, value: Any) -> Any:
        if value is not None and not all(
            hasattr(value, name)
            for name in ("head_object", "get_object_stream", "put_object", "delete_object")
        ):
            raise ValueError("storage must implement the StorageClient protocol")
        return value

    @model_validator(mode="after")
    def _check_filename_against_mode(self) -> "RouteConfig":
        if self.filename is not None and all(
            self.mode_for(method) is DispositionMode.OFF for method in _MODE_METHODS
        ):
            raise ValueError('"filename" is not allowed when "mode" is off')
        return self

    def mode_for(self, method: str) -> DispositionMode:
        """Return the disposition mode in effect for ``method``."""
        return mode_for_method(self.mode, method)


# ---------------------------------------------------------------------------
# Application config (YAML)
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30


class StorageConfig(BaseModel):
    """Default storage connection shared by all configured routes."""

    backend: str = "aws"
    region: str = "us-east-1"
    endpoint_url: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    ssl_enabled: bool = True
    path_style: bool = False


class ObservabilityConfig(BaseModel):
    """Metrics and health check toggles."""

    metrics: bool = True
    health_check: bool = True


class RouteEntry(BaseModel):
    """One route declared in the config file.

    ``options`` holds literal ``RouteConfig`` options (bucket, key, mode,
    ...); resolvers and ``on_response`` can only be set from code.
    """

    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])
    options: dict[str, Any] = Field(default_factory=dict)


class ServeS3Config(BaseModel):
    """Top-level serve-s3 configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    routes: list[RouteEntry] = Field(default_factory=list)


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return {k: v for k, v in data.items() if k in ServerConfig.model_fields}


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles the nested ``aws`` section: storage.aws.region -> region, etc.
    """
    if data is None:
        return {}

    result: dict[str, Any] = {"backend": data.get("backend", "aws")}

    aws_section = data.get("aws")
    if isinstance(aws_section, dict):
        for name in (
            "region",
            "endpoint_url",
            "access_key_id",
            "secret_access_key",
            "ssl_enabled",
            "path_style",
        ):
            if name in aws_section:
                result[name] = aws_section[name]

    return result


def _parse_routes(data: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Parse the routes list: ``path`` and ``methods`` are split from the options."""
    if not data:
        return []
    routes = []
    for item in data:
        options = dict(item)
        path = options.pop("path", None)
        methods = options.pop("methods", ["GET"])
        if isinstance(methods, str):
            methods = [methods]
        routes.append({"path": path, "methods": methods, "options": options})
    return routes


def load_config(path: Path) -> ServeS3Config:
    """Load a ServeS3Config from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated ServeS3Config validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return ServeS3Config(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        observability=ObservabilityConfig(**(raw.get("observability") or {})),
        routes=[RouteEntry(**entry) for entry in _parse_routes(raw.get("routes"))],
    )
