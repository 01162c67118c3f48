import sys
from fileserver.config import parse_config, StartupError
from fileserver.users import load_users
from fileserver.server_core import Server


def main(argv=None):
    try:
        config = parse_config(argv)
        users = load_users(config.credentials_path)
        server = Server(config, users)
        server.bind()
    except StartupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("------------------------------------------------")
    print("--- Sahar's file server ---")
    print(f"--- Directory: {config.root_directory}")
    print(f"--- Port: {config.port} | Users loaded: {len(users)}")
    print("------------------------------------------------")

    server.install_signal_handlers()
    server.serve_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
