"""Launch a throwaway PostgreSQL container and point pgaws at it."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pgaws.config import CONFIG_FILE, load_config_file, save_config_file
from pgaws.errors import ConfigError

DEFAULT_CONTAINER = "pgaws-sample-db"
DEFAULT_PORT = 5543
DEFAULT_PASSWORD = "pgaws"
DEFAULT_DB = "pgaws_demo"
DEFAULT_USER = "pgaws"
DOCKER_IMAGE = "postgres:16-alpine"

SEED_SQL = """
CREATE TABLE IF NOT EXISTS endpoints (
    id SERIAL PRIMARY KEY,
    host TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'writer'
);
INSERT INTO endpoints (host, role) VALUES
    ('cluster-a.local', 'writer'),
    ('cluster-b.local', 'reader')
ON CONFLICT DO NOTHING;
""".strip()


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(args: argparse.Namespace) -> None:
    if container_exists(args.container):
        print(f"Container '{args.container}' already exists. Reusing it.")
        run(["docker", "start", args.container], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                args.container,
                "-e",
                f"POSTGRES_PASSWORD={args.password}",
                "-e",
                f"POSTGRES_DB={args.database}",
                "-e",
                f"POSTGRES_USER={args.user}",
                "-p",
                f"{args.port}:5432",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(args.container, args.user)


def wait_for_start(name: str, user: str, retries: int = 15, delay: float = 1.0) -> None:
    for _ in range(retries):
        result = subprocess.run(["docker", "exec", name, "pg_isready", "-U", user], text=True)
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def seed_data(args: argparse.Namespace) -> None:
    run(
        ["docker", "exec", "-i", args.container, "psql", "-U", args.user, "-d", args.database, "-v", "ON_ERROR_STOP=1"],
        input=SEED_SQL,
    )


def store_credentials(args: argparse.Namespace) -> None:
    """Merge the sample credentials into the user driverconfig.toml."""

    properties: dict[str, str] = {}
    if CONFIG_FILE.is_file():
        try:
            properties = dict(load_config_file(CONFIG_FILE).properties)
        except ConfigError as exc:
            print(f"Ignoring unreadable {CONFIG_FILE}: {exc}")
    properties.update({"user": args.user, "password": args.password})
    save_config_file(properties, CONFIG_FILE)
    print(f"Stored sample credentials in {CONFIG_FILE}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose Postgres on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Postgres password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args)
        seed_data(args)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    store_credentials(args)
    print(f"Sample database is ready. Try: pgaws postgresql://localhost:{args.port}/{args.database} --connect")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
