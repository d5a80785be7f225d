"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Callable, Generator, TypedDict

import pytest

from tests.utils.http import reserve_port, wait_for_port, wait_for_unix_socket

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    process: subprocess.Popen


def server_command(*args: str) -> list[str]:
    """Command line running the server entry point with ``args``."""

    return [sys.executable, str(SERVER_ENTRYPOINT), "--workers", "2", *args]


def _stop(process: subprocess.Popen) -> None:
    if process.poll() is None:
        process.terminate()
    try:
        process.wait(timeout=5)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait(timeout=5)


def _launch_server(
    host: str, port: int, extra_args: list[str] | None = None
) -> Generator[ServerProcessInfo, None, None]:
    args = server_command(*(extra_args or []), host, str(port))
    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            # If startup failed, print stdout/stderr to help debug
            _stop(process)
            stdout, stderr = process.communicate(timeout=1)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "host": host,
            "port": port,
            "process": process,
        }
        _stop(process)


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="server_process")
def _server_process() -> Generator[ServerProcessInfo, None, None]:
    """Launch the server on a free loopback port."""

    host = "127.0.0.1"
    yield from _launch_server(host, reserve_port(host))


@pytest.fixture(name="no_half_closure_server")
def _no_half_closure_server() -> Generator[ServerProcessInfo, None, None]:
    """Launch the server with remote half-closure disabled."""

    host = "127.0.0.1"
    yield from _launch_server(host, reserve_port(host), ["--disable-half-closure"])


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]


@pytest.fixture()
def unix_server(tmp_path: Path) -> Generator[str, None, None]:
    """Launch the server on a Unix domain socket and yield its path."""

    path = str(tmp_path / "hello.sock")
    with subprocess.Popen(
        server_command(path),
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_unix_socket(path)
            yield path
        finally:
            _stop(process)


@pytest.fixture()
def spawn_server() -> Generator[Callable[..., subprocess.Popen], None, None]:
    """Start servers with arbitrary arguments; all are stopped afterwards."""

    processes: list[subprocess.Popen] = []

    def _spawn(*args: str, **popen_kwargs) -> subprocess.Popen:
        popen_kwargs.setdefault("stdout", subprocess.PIPE)
        popen_kwargs.setdefault("stderr", subprocess.PIPE)
        process = subprocess.Popen(
            server_command(*args), cwd=PROJECT_ROOT, **popen_kwargs
        )
        processes.append(process)
        return process

    yield _spawn
    for process in processes:
        _stop(process)
        for stream in (process.stdin, process.stdout, process.stderr):
            if stream is not None:
                stream.close()
