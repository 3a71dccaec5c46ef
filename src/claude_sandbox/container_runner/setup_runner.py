#!/usr/bin/env python3
"""In-container setup batch runner and environment capture.

Mounted read-only into the container next to the host-written batch file
and invoked by the image entrypoint::

    python3 /opt/sandbox/setup_runner.py /opt/sandbox/setup.json

Stdlib only: it runs under the image's system python, not the host venv.

Each command record runs as its own ``bash -c`` process. The command text is
passed as a positional argument and ``eval``-ed, never spliced into a
script. The environment a command leaves behind is dumped on exit and becomes
the environment of the next command, so ``export`` and ``source`` persist
through the batch. The difference between the environment before the first
and after the last command is written to ``~/.sandbox-env`` (sourced by
interactive shells) and copied into the capture directory, together with a
``ready.json`` completion artifact the host polls for.
"""

from __future__ import annotations

import argparse
import json
import os
import re
import shlex
import shutil
import subprocess
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path

# Process-local variables that differ between any two shells
VOLATILE_VARS = frozenset({"PWD", "OLDPWD", "SHLVL", "_"})

ENV_FILE_NAME = ".sandbox-env"
CAPTURE_ENV_NAME = "sandbox-env"
READY_FILE_NAME = "ready.json"
BEFORE_SNAPSHOT = Path(tempfile.gettempdir()) / "sandbox-env-before"
AFTER_SNAPSHOT = Path(tempfile.gettempdir()) / "sandbox-env-after"

_ENV_OUT_VAR = "__SANDBOX_ENV_OUT"
_RUNNER_SCRIPT = 'trap \'env -0 > "$__SANDBOX_ENV_OUT"\' EXIT\neval "$1"'
_SHELL_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def env_lines(env: dict[str, str]) -> list[str]:
    return [f"{key}={value}" for key, value in env.items()]


def _line_key(line: str) -> str:
    return line.split("=", 1)[0]


def compute_env_delta(
    before: list[str],
    after: list[str],
    denylist: frozenset[str] = VOLATILE_VARS,
) -> list[str]:
    """Entries of *after* not present verbatim in *before*, minus denylisted names.

    Order follows *after*. Identical snapshots give [].
    """
    seen = set(before)
    return [line for line in after if line not in seen and _line_key(line) not in denylist]


def split_exportable(delta: list[str]) -> tuple[list[str], list[str]]:
    """Partition *delta* by whether the key is a valid shell variable name.

    Exported bash functions show up as ``BASH_FUNC_name%%`` and cannot be
    re-exported by name.
    """
    kept: list[str] = []
    skipped: list[str] = []
    for line in delta:
        (kept if _SHELL_NAME.fullmatch(_line_key(line)) else skipped).append(line)
    return kept, skipped


def render_env_file(delta: list[str]) -> str:
    """Shell-sourceable ``export KEY='VALUE'`` lines.

    Entries whose key is not a shell variable name are left out.
    """
    lines = []
    for line in split_exportable(delta)[0]:
        key, _, value = line.partition("=")
        lines.append(f"export {key}={shlex.quote(value)}")
    return "\n".join(lines) + ("\n" if lines else "")


def parse_env_file(text: str) -> list[str]:
    """Inverse of render_env_file: ``KEY=VALUE`` entries in file order."""
    return [token for token in shlex.split(text) if token != "export" and "=" in token]


def _parse_env_dump(raw: bytes) -> dict[str, str]:
    env: dict[str, str] = {}
    for entry in raw.split(b"\0"):
        if not entry or b"=" not in entry:
            continue
        key, _, value = entry.decode("utf-8", errors="replace").partition("=")
        env[key] = value
    return env


def _write_snapshot(path: Path, lines: list[str]) -> None:
    path.write_bytes(b"\0".join(line.encode("utf-8", errors="replace") for line in lines))


def _write_json_atomic(path: Path, payload: dict[str, object]) -> None:
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(payload))
    tmp.rename(path)


def run_command(
    run: str, env: dict[str, str], cwd: str | None = None
) -> tuple[int, dict[str, str]]:
    """Run one command; return its exit code and the environment it left behind."""
    fd, out_path = tempfile.mkstemp(prefix="sandbox-env-")
    os.close(fd)
    try:
        proc_env = {**env, _ENV_OUT_VAR: out_path}
        result = subprocess.run(
            ["bash", "-c", _RUNNER_SCRIPT, "sandbox-setup", run],
            env=proc_env,
            cwd=cwd,
        )
        dumped = _parse_env_dump(Path(out_path).read_bytes())
    finally:
        Path(out_path).unlink(missing_ok=True)
    dumped.pop(_ENV_OUT_VAR, None)
    return result.returncode, dumped or dict(env)


def run_batch(
    commands: list[dict[str, object]],
    *,
    home: Path,
    capture_dir: Path | None,
    cwd: str | None = None,
    base_env: dict[str, str] | None = None,
) -> int:
    """Execute the batch, write the env delta and the readiness artifact. Returns an exit code."""
    env = dict(os.environ if base_env is None else base_env)
    before = env_lines(env)
    _write_snapshot(BEFORE_SNAPSHOT, before)

    total = len(commands)
    status = "completed"
    failed_command: str | None = None
    exit_code = 0
    for position, record in enumerate(commands, start=1):
        run = str(record["run"])
        label = str(record.get("name") or run)
        print(f"[SANDBOX] [{position}/{total}] {label}", flush=True)
        exit_code, env = run_command(run, env, cwd=cwd)
        if exit_code != 0:
            print(f"[SANDBOX] Command failed (exit {exit_code}): {label}", flush=True)
            status = "failed"
            failed_command = run
            break

    after = env_lines(env)
    _write_snapshot(AFTER_SNAPSHOT, after)
    delta, skipped = split_exportable(compute_env_delta(before, after))
    for line in skipped:
        print(f"[SANDBOX] Not exporting {_line_key(line)}: not a shell variable name", flush=True)

    env_file = home / ENV_FILE_NAME
    env_file.write_text(render_env_file(delta))
    print(f"[SANDBOX] Captured {len(delta)} environment variable(s)", flush=True)

    if capture_dir is not None:
        capture_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(env_file, capture_dir / CAPTURE_ENV_NAME)
        _write_json_atomic(
            capture_dir / READY_FILE_NAME,
            {
                "status": status,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "failed_command": failed_command,
                "exit_code": exit_code,
                "captured": len(delta),
            },
        )
    return exit_code


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run sandbox setup commands and capture env")
    parser.add_argument("batch", help="Path to the setup batch JSON file")
    parser.add_argument("--home", default=os.environ.get("HOME", "/home/claude"))
    parser.add_argument("--capture-dir", default=os.environ.get("SANDBOX_CAPTURE_DIR"))
    parser.add_argument("--cwd", default=os.environ.get("WORKSPACE_PATH"))
    args = parser.parse_args(argv)

    batch = json.loads(Path(args.batch).read_text())
    commands = sorted(batch.get("commands", []), key=lambda c: int(c.get("index", 0)))
    capture_dir = Path(args.capture_dir) if args.capture_dir else None
    return run_batch(commands, home=Path(args.home), capture_dir=capture_dir, cwd=args.cwd)


if __name__ == "__main__":
    sys.exit(main())
