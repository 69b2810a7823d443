"""Argument parser configuration for the mailwire CLI"""

import argparse


## Argument Adding Utilities

def add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    """Add server, port and encryption arguments shared by all protocols."""

    connection_group = parser.add_argument_group(
        "connection", "Server and transport security"
    )

    connection_group.add_argument(
        "--server",
        help="Server host name (default: from configuration)"
    )
    connection_group.add_argument(
        "--port",
        type=int,
        help="Server port (default: protocol port, or its SSL port with --ssl)"
    )
    connection_group.add_argument(
        "--ssl",
        action="store_true",
        default=None,
        help="Encrypt right after connecting (implicit TLS)"
    )
    connection_group.add_argument(
        "--starttls",
        action="store_true",
        help="Upgrade the plaintext connection with STLS/STARTTLS"
    )
    connection_group.add_argument(
        "--if-supported",
        dest="if_supported",
        action="store_true",
        help="With --starttls: continue in plaintext if the server declines"
    )
    connection_group.add_argument(
        "--unsafe",
        action="store_true",
        default=None,
        help="Do not validate the server certificate"
    )
    connection_group.add_argument(
        "--timeout",
        type=float,
        help="Connect timeout in seconds"
    )


def add_login_arguments(parser: argparse.ArgumentParser) -> None:
    """Add POP3 credential arguments."""

    parser.add_argument(
        "--user",
        dest="username",
        help="Account name (prompted for when missing)"
    )
    parser.add_argument(
        "--password",
        help="Password (prompted for when missing)"
    )
    parser.add_argument(
        "--apop",
        action="store_true",
        default=None,
        help="Log in with APOP challenge-response"
    )


def split_recipients(values) -> list:
    """Flatten repeated, comma-separated --rcpt values."""

    recipients = []
    for value in values or []:
        recipients.extend(part.strip() for part in value.split(",") if part.strip())
    return recipients


## Command Setup Functions

def setup_fetch_command(subparsers) -> None:
    """Setup the mailbox download command."""

    fetch_parser = subparsers.add_parser(
        "fetch",
        help="Download all messages from a POP3 server",
        description="Retrieve every message into .eml files, deleting it on the server unless --keep"
    )
    add_connection_arguments(fetch_parser)
    add_login_arguments(fetch_parser)

    fetch_parser.add_argument(
        "--keep",
        action="store_true",
        default=None,
        help="Leave messages on the server"
    )
    fetch_parser.add_argument(
        "--capa",
        action="store_true",
        default=None,
        help="Query server capabilities first"
    )
    fetch_parser.add_argument(
        "--dir",
        dest="download_dir",
        help="Directory for the .eml files (default: from configuration)"
    )


def setup_send_command(subparsers) -> None:
    """Setup the message submission command."""

    send_parser = subparsers.add_parser(
        "send",
        help="Send a message from a file or standard input via SMTP",
        description="Submit one message; envelope addresses default to its headers"
    )
    add_connection_arguments(send_parser)

    send_parser.add_argument(
        "--helo",
        dest="helo_name",
        help="Name sent with EHLO/HELO (default: local host name)"
    )
    send_parser.add_argument(
        "--from",
        dest="sender",
        help="Envelope sender (default: Return-Path/Reply-To/From header)"
    )
    send_parser.add_argument(
        "--rcpt",
        dest="recipients",
        action="append",
        help="Envelope recipient; repeatable and comma separated (default: Delivered-To/To headers)"
    )
    send_parser.add_argument(
        "--file",
        help="Message file (default: standard input)"
    )
    send_parser.add_argument(
        "--delete",
        action="store_true",
        default=None,
        help="Delete --file after the server accepted the message"
    )


def setup_shell_command(subparsers) -> None:
    """Setup the interactive POP3 session command."""

    shell_parser = subparsers.add_parser(
        "shell",
        help="Talk to a POP3 server interactively",
        description="Log in, list the maildrop, then send raw POP3 commands"
    )
    add_connection_arguments(shell_parser)
    add_login_arguments(shell_parser)


def setup_config_commands(subparsers) -> None:
    """Setup configuration management commands."""

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage application configuration settings"
    )

    config_subparsers = config_parser.add_subparsers(
        dest="config_command",
        required=True,
        help="Configuration operation to perform"
    )

    config_subparsers.add_parser(
        "list",
        help="List current settings"
    )

    get_parser = config_subparsers.add_parser(
        "get",
        help="Get a setting value"
    )
    get_parser.add_argument("key", help="Config key to get, e.g. pop3.host")

    set_parser = config_subparsers.add_parser(
        "set",
        help="Set a setting value"
    )
    set_parser.add_argument("key", help="Config key to set")
    set_parser.add_argument("value", help="New value for the config key")

    config_subparsers.add_parser(
        "reset",
        help="Reset settings to default"
    )


## Main Parser Setup

def setup_argument_parser() -> argparse.ArgumentParser:
    """Setup the main argument parser for the mailwire CLI."""

    parser = argparse.ArgumentParser(
        prog="mailwire",
        description="Line-oriented mail client - fetch from POP3, send via SMTP",
        epilog="Use 'mailwire <command> --help' for command-specific help."
    )

    parser.add_argument(
        "--version",
        action="version",
        version="mailwire 0.1.0",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        help="Configuration file (default: ~/.mailwire/config.json)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show the protocol exchange"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        help="Command to execute"
    )

    setup_fetch_command(subparsers)
    setup_send_command(subparsers)
    setup_shell_command(subparsers)
    setup_config_commands(subparsers)

    return parser
