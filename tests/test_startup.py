"""Option parsing, credential loading and the launcher's exit codes."""

import pytest

import server
from fileserver.config import Config, StartupError, parse_config
from fileserver.users import load_users, parse_users, verify_password


class TestUsers:
    """Credential file loading."""

    def test_records_and_skipped_lines(self):
        users = parse_users(["alice:wonder\n", "no delimiter here\n", "\n", "bob:builder\r\n"])
        assert dict(users) == {"alice": "wonder", "bob": "builder"}

    def test_password_may_contain_colons(self):
        users = parse_users(["carol:pa:ss:word\n"])
        assert users["carol"] == "pa:ss:word"

    def test_empty_username_is_skipped(self):
        assert dict(parse_users([":secret\n"])) == {}

    def test_first_occurrence_wins(self):
        users = parse_users(["dave:first\n", "dave:second\n"])
        assert users["dave"] == "first"

    def test_table_is_read_only(self):
        users = parse_users(["alice:wonder"])
        with pytest.raises(TypeError):
            users["mallory"] = "x"

    def test_verify_password_is_literal(self):
        users = parse_users(["alice:wonder"])
        assert verify_password(users, "alice", "wonder")
        assert not verify_password(users, "alice", "WONDER")
        assert not verify_password(users, "nobody", "wonder")

    def test_undecodable_password_is_a_mismatch(self):
        users = parse_users(["alice:wonder"])
        password = b"\xff".decode("utf-8", errors="surrogateescape")
        assert not verify_password(users, "alice", password)

    def test_load_from_file(self, users_file):
        users = load_users(str(users_file))
        assert set(users) == {"alice", "bob"}

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(StartupError):
            load_users(str(tmp_path / "missing.txt"))


class TestOptions:
    """Command line and environment configuration."""

    def test_all_options(self, root_dir, users_file):
        config = parse_config(["-d", str(root_dir), "-p", "1508", "-u", str(users_file)], environ={})
        assert config == Config(str(root_dir), 1508, str(users_file), "0.0.0.0")

    def test_long_options(self, root_dir, users_file):
        config = parse_config(
            ["--directory", str(root_dir), "--port", "2121", "--users", str(users_file)], environ={}
        )
        assert config.port == 2121

    def test_environment_defaults(self, root_dir, users_file):
        environ = {"FTP_ROOT": str(root_dir), "FTP_PORT": "4000", "FTP_USERS": str(users_file)}
        config = parse_config([], environ=environ)
        assert config.port == 4000
        assert config.root_directory == str(root_dir)

    @pytest.mark.parametrize("argv", [
        [],
        ["-d", "x", "-u", "y"],
        ["-d", "x", "-p", "abc", "-u", "y"],
        ["-d", "x", "-p", "0", "-u", "y"],
        ["-d", "x", "-p", "65536", "-u", "y"],
    ])
    def test_usage_errors(self, argv, capsys):
        with pytest.raises(SystemExit) as excinfo:
            parse_config(argv, environ={})
        assert excinfo.value.code == 1
        assert "usage:" in capsys.readouterr().err

    def test_bad_port_from_environment(self, root_dir, users_file):
        environ = {"FTP_PORT": "99999"}
        with pytest.raises(SystemExit) as excinfo:
            parse_config(["-d", str(root_dir), "-u", str(users_file)], environ=environ)
        assert excinfo.value.code == 1

    def test_launcher_usage_error_exits_1(self, capsys, monkeypatch):
        for name in ("FTP_ROOT", "FTP_PORT", "FTP_USERS"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(SystemExit) as excinfo:
            server.main(["-p", "1508"])
        assert excinfo.value.code == 1
        assert "usage:" in capsys.readouterr().err

    def test_missing_directory(self, tmp_path, users_file):
        with pytest.raises(StartupError):
            parse_config(["-d", str(tmp_path / "nope"), "-p", "1508", "-u", str(users_file)], environ={})

    def test_config_is_frozen(self, root_dir, users_file):
        config = Config(str(root_dir), 1508, str(users_file))
        with pytest.raises(Exception):
            config.port = 1


class TestLauncher:
    """server.main exit codes on startup failure."""

    def test_missing_directory_exits_1(self, tmp_path, users_file, capsys):
        assert server.main(["-d", str(tmp_path / "nope"), "-p", "1508", "-u", str(users_file)]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_unreadable_credentials_exit_1(self, root_dir, tmp_path, capsys):
        assert server.main(["-d", str(root_dir), "-p", "1508", "-u", str(tmp_path / "none")]) == 1
        assert "password file" in capsys.readouterr().err

    def test_bind_failure_exits_1(self, root_dir, users_file, make_server, capsys):
        busy = make_server()
        port = busy.address[1]
        assert server.main(["-d", str(root_dir), "-p", str(port), "-u", str(users_file), "-a", "127.0.0.1"]) == 1
        assert "Failed to bind" in capsys.readouterr().err
