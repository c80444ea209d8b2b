import os
import time

from .config import AuthConfig


def dbg_dump(name: str, content: str | bytes, config: AuthConfig) -> None:
    # Dump raw responses to disk when debugging is on; set AUTH_DEBUG=1 to enable
    if not config.debug:
        return

    base = config.debug_path or os.getcwd()
    os.makedirs(base, exist_ok=True)  # ensure folder exists
    path = os.path.join(base, f"{int(time.time())}_{name}")

    mode = "wb" if isinstance(content, (bytes, bytearray)) else "w"
    with open(path, mode, encoding=None if mode == "wb" else "utf-8") as f:
        f.write(content)
