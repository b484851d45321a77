"""Command line front end: ``core-deploy deploy``."""

from typing import Any, Callable
import argparse
import importlib
import os
import sys

import yaml
from dotenv import load_dotenv

from . import __version__
from .config import DeploySettings
from .display import Display
from .engine import ReconciliationEngine
from .logging import setup_logging
from .provider.ros import RosProvider

load_dotenv()


def parse_overrides(values: list[str] | None) -> dict[str, str]:
    """Turn ``KEY=VALUE`` arguments into a mapping.  Later keys win."""
    overrides: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Parameter override must look like KEY=VALUE, got '{item}'")
        overrides[key.strip()] = value
    return overrides


def load_template_file(path: str) -> dict[str, Any]:
    """Read a YAML or JSON template document"""
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Template file '{path}' does not contain a mapping")
    return data


def load_transport_factory(target: str) -> Callable[[DeploySettings], Any]:
    """Import ``module:attribute`` and return the transport factory it names"""
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Transport must look like 'module:factory', got '{target}'")
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ValueError(f"'{target}' is not callable")
    return factory


def add_deploy_subparser(subparsers):
    parser = subparsers.add_parser("deploy", help="Deploy a template to a stack")
    parser.add_argument(
        "-t",
        "--template",
        dest="template",
        metavar="<path>",
        required=True,
        help="Template file (YAML or JSON)",
    )
    parser.add_argument(
        "-s",
        "--stack-name",
        dest="stack_name",
        metavar="<name>",
        required=True,
        help="Name of the stack to create or update",
    )
    parser.add_argument(
        "-y",
        "--assume-yes",
        dest="assume_yes",
        action="store_true",
        help="Apply the change set without asking for confirmation",
    )
    parser.add_argument(
        "-p",
        "--parameter-override",
        dest="parameter_override",
        metavar="<key=value>",
        action="append",
        default=[],
        help="Override a template parameter.  May be repeated",
    )
    parser.add_argument(
        "--transport",
        dest="transport",
        metavar="<module:factory>",
        default=os.getenv("TRANSPORT"),
        required=os.getenv("TRANSPORT") is None,
        help="Factory returning the provider transport.  Default is the TRANSPORT environment variable",
    )


def parse_args(argv: list[str] | None = None) -> dict:
    parser = argparse.ArgumentParser(
        prog="core-deploy",
        description="Reconcile a serverless stack with its template",
    )
    parser.add_argument("--region", dest="region", metavar="<region>", help="Region id. Default is the REGION environment variable")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(title="Commands", dest="command", metavar="<command>", required=True)
    add_deploy_subparser(subparsers)

    return vars(parser.parse_args(argv))


def run_deploy(
    template: str,
    stack_name: str,
    assume_yes: bool,
    parameter_override: list[str],
    transport: str,
    settings: DeploySettings,
    display: Display | None = None,
    **kwargs,
) -> int:
    document = load_template_file(template)
    overrides = parse_overrides(parameter_override)

    factory = load_transport_factory(transport)
    provider = RosProvider(factory(settings), settings)

    engine = ReconciliationEngine(provider, settings, display=display)
    outcome = engine.deploy(stack_name, document, assume_yes=assume_yes, parameter_override=overrides)
    return outcome.exit_code


COMMAND: dict[str, Callable[..., int]] = {
    "deploy": run_deploy,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = DeploySettings.from_env(region=args.pop("region"))
    setup_logging(settings.log_level, settings.log_format)

    display = Display()
    command = COMMAND[args.pop("command")]
    try:
        return command(settings=settings, display=display, **args)
    except KeyboardInterrupt:
        return 130
    except (OSError, ValueError, ImportError, argparse.ArgumentTypeError, yaml.YAMLError) as e:
        display.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
