import argparse
import logging
import os
from typing import Any, Literal, Union

logger = logging.getLogger(__name__)

ALLOWED_TRANSPORTS = ["stdio", "http", "sse"]
ENV_PREFIX = "JOURNEY_BUILDER_"

Transport = Literal["stdio", "http", "sse"]


def format_namespace(namespace: str) -> str:
    """
    Format the namespace to ensure it ends with a hyphen.

    Parameters
    ----------
    namespace : str
        The namespace to format.

    Returns
    -------
    formatted_namespace : str
        The namespace in format: namespace-toolname
    """
    if not namespace:
        return ""
    return namespace if namespace.endswith("-") else namespace + "-"


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_transport(args: argparse.Namespace) -> Transport:
    """
    Parse the transport from the command line arguments or environment variables.

    Raises
    ------
    ValueError: If the transport is not one of stdio, http or sse.
    """
    env_var = ENV_PREFIX + "TRANSPORT"
    transport = args.transport if args.transport is not None else os.getenv(env_var)
    if transport is None:
        logger.info("Info: No transport type provided. Using default: stdio")
        return "stdio"
    if transport not in ALLOWED_TRANSPORTS:
        logger.error(
            f"Invalid transport: {transport}. Allowed transports are: {ALLOWED_TRANSPORTS}"
        )
        raise ValueError(
            f"Invalid transport: {transport}. Allowed transports are: {ALLOWED_TRANSPORTS}"
        )
    return transport


def _parse_server_setting(
    cli_value: Any,
    env_var: str,
    setting: str,
    transport: Transport,
    default: Any,
) -> Any:
    """
    Resolve one HTTP server setting: CLI argument, then environment variable,
    then `default` for remote transports. `stdio` ignores the setting.
    """
    source = None
    if cli_value is not None:
        value, source = cli_value, f"`server_{setting}` argument"
    elif os.getenv(env_var) is not None:
        value, source = os.getenv(env_var), f"`{env_var}` environment variable"

    if source is not None:
        if transport == "stdio":
            logger.warning(
                f"Warning: Server {setting} provided, but transport is `stdio`. The {source} will be set, but ignored."
            )
        return value

    if transport != "stdio":
        logger.warning(
            f"Warning: No server {setting} provided and transport is not `stdio`. Using default server {setting}: {default}"
        )
        return default

    logger.info(
        f"Info: No server {setting} provided and transport is `stdio`. `server_{setting}` will be None."
    )
    return None


def parse_server_host(args: argparse.Namespace, transport: Transport) -> str | None:
    "Parse the server host from the command line arguments or environment variables."
    return _parse_server_setting(
        args.server_host, ENV_PREFIX + "MCP_SERVER_HOST", "host", transport, "127.0.0.1"
    )


def parse_server_port(args: argparse.Namespace, transport: Transport) -> int | None:
    "Parse the server port from the command line arguments or environment variables."
    port = _parse_server_setting(
        args.server_port, ENV_PREFIX + "MCP_SERVER_PORT", "port", transport, 8000
    )
    return int(port) if port is not None else None


def parse_server_path(args: argparse.Namespace, transport: Transport) -> str | None:
    "Parse the server path from the command line arguments or environment variables."
    return _parse_server_setting(
        args.server_path, ENV_PREFIX + "MCP_SERVER_PATH", "path", transport, "/mcp/"
    )


def parse_allow_origins(args: argparse.Namespace) -> list[str]:
    """
    Parse the CORS allow origins (comma-separated) from the command line
    arguments or environment variables. Defaults to no origins.
    """
    if args.allow_origins is not None:
        return _split_csv(args.allow_origins)
    env_value = os.getenv(ENV_PREFIX + "MCP_SERVER_ALLOW_ORIGINS")
    if env_value is not None:
        return _split_csv(env_value)
    logger.info("Info: No allow origins provided. Defaulting to no allowed origins.")
    return list()


def parse_allowed_hosts(args: argparse.Namespace) -> list[str]:
    """
    Parse the allowed hosts (comma-separated) used for DNS rebinding protection.
    Defaults to localhost only.
    """
    if args.allowed_hosts is not None:
        return _split_csv(args.allowed_hosts)
    env_value = os.getenv(ENV_PREFIX + "MCP_SERVER_ALLOWED_HOSTS")
    if env_value is not None:
        return _split_csv(env_value)
    logger.info(
        "Info: No allowed hosts provided. Defaulting to secure mode - only localhost and 127.0.0.1 allowed."
    )
    return ["localhost", "127.0.0.1"]


def parse_namespace(args: argparse.Namespace) -> str:
    "Parse the tool namespace from the command line arguments or environment variables."
    namespace = (
        args.namespace
        if args.namespace is not None
        else os.getenv(ENV_PREFIX + "NAMESPACE")
    )
    if namespace is None:
        logger.info("Info: No namespace provided for tools. No namespace will be used.")
        return ""
    logger.info(f"Info: Namespace provided for tools: {namespace}")
    return namespace


def process_config(args: argparse.Namespace) -> dict[str, Union[str, int, list[str], None]]:
    """
    Process the command line arguments and environment variables into the
    keyword arguments of `server.main`.

    Parameters
    ----------
    args : argparse.Namespace
        The command line arguments.

    Returns
    -------
    config : dict[str, Any]
        The configuration dictionary.
    """
    config: dict[str, Union[str, int, list[str], None]] = dict()

    config["transport"] = parse_transport(args)
    config["host"] = parse_server_host(args, config["transport"])
    config["port"] = parse_server_port(args, config["transport"])
    config["path"] = parse_server_path(args, config["transport"])
    config["namespace"] = parse_namespace(args)
    config["allow_origins"] = parse_allow_origins(args)
    config["allowed_hosts"] = parse_allowed_hosts(args)

    return config
