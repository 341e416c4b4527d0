from __future__ import annotations
import os
import socket

HOST = "127.0.0.1"
DEFAULT_PORT = 8629


def _port_is_free(host: str, port: int) -> bool:
    with socket.socket() as s:
        try:
            s.bind((host, port))
        except OSError:
            return False
    return True


def pick_port(host: str = HOST, preferred: int = DEFAULT_PORT, attempts: int = 3) -> int:
    """First free port from ``preferred`` upward, else one the OS assigns."""
    for port in range(preferred, preferred + attempts):
        if _port_is_free(host, port):
            return port
    with socket.socket() as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def local_data_path() -> str:
    # Per-user data dir on Windows; home directory otherwise
    appdata = os.getenv("APPDATA") or os.path.expanduser("~")
    data_dir = os.path.join(appdata, "DivertBoard")
    os.makedirs(data_dir, exist_ok=True)
    return os.path.join(data_dir, "divertboard.db")


def main():
    # Config is read at import time, so set it before uvicorn imports the app
    os.environ.setdefault("SQLITE_PATH", local_data_path())

    import uvicorn
    uvicorn.run("divertboard.main:app", host=HOST, port=pick_port(), log_config=None)


if __name__ == "__main__":
    main()
