#!/usr/bin/env python3
"""Mandala agent deploy tools: CLI entrypoint."""

import argparse

from mandala_cli.commands.deploy import register_deploy_command, register_plan_command
from mandala_cli.commands.nodes import register_nodes_command
from mandala_cli.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Deploy multi-service agents to Mandala nodes")
    parser.add_argument("--config", default=None, help="Settings file (default: ~/.mandala/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_deploy_command(subparsers)
    register_plan_command(subparsers)
    register_nodes_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
