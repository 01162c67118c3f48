import os
import sys
import argparse
from dataclasses import dataclass

HOST = "0.0.0.0"

# Environment variables used as defaults for each option
ENV_ROOT = "FTP_ROOT"
ENV_PORT = "FTP_PORT"
ENV_USERS = "FTP_USERS"


class StartupError(Exception):
    """Configuration, credentials or bind failure before the server runs."""


@dataclass(frozen=True)
class Config:
    root_directory: str
    port: int
    credentials_path: str
    host: str = HOST


class OptionParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors exit with status 1 like other startup failures."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def port_number(value):
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise argparse.ArgumentTypeError("Port number should be an integer.")
    if port < 1 or port > 65535:
        raise argparse.ArgumentTypeError("Invalid port number. port should be between 1 and 65535.")
    return port


def build_parser(environ=None):
    environ = os.environ if environ is None else environ
    parser = OptionParser(
        prog="sahar-fileserver",
        description="Multi-client authenticated file server.",
    )
    root_default = environ.get(ENV_ROOT)
    port_default = environ.get(ENV_PORT)
    users_default = environ.get(ENV_USERS)

    parser.add_argument(
        '-d', '--directory',
        default=root_default,
        required=root_default is None,
        help='Running directory whose files are accessed/modified/erased (env: FTP_ROOT)'
    )
    # String defaults go through 'type' as well, so FTP_PORT is validated too
    parser.add_argument(
        '-p', '--port',
        type=port_number,
        default=port_default,
        required=port_default is None,
        help='Server port number, 1..65535 (env: FTP_PORT)'
    )
    parser.add_argument(
        '-u', '--users',
        default=users_default,
        required=users_default is None,
        help="Password file in 'user:password' format (env: FTP_USERS)"
    )
    parser.add_argument(
        '-a', '--address',
        default=HOST,
        help='The IP address to bind to (default: 0.0.0.0)'
    )
    return parser


def parse_config(argv=None, environ=None):
    """
    Parse command line options into a Config.
    Usage errors exit with status 1; a missing directory raises StartupError.
    """
    parser = build_parser(environ)
    args = parser.parse_args(argv)

    directory = os.path.abspath(args.directory)
    if not os.path.isdir(directory):
        raise StartupError("Provided directory does not exist or is invalid.")

    return Config(
        root_directory=directory,
        port=args.port,
        credentials_path=args.users,
        host=args.address,
    )
