from __future__ import annotations

import argparse
import errno
import fcntl
import os
import sys

DM_IOCTL = 0xFD
DM_MPATH_PROBE_PATHS_CMD = 18
# _IO(DM_IOCTL, DM_MPATH_PROBE_PATHS_CMD): no direction, no payload
DM_MPATH_PROBE_PATHS = (DM_IOCTL << 8) | DM_MPATH_PROBE_PATHS_CMD


def probe_paths(device: str) -> bool:
    fd = os.open(device, os.O_RDONLY)
    try:
        while True:
            try:
                fcntl.ioctl(fd, DM_MPATH_PROBE_PATHS)
            except OSError as exc:
                if exc.errno == errno.ENOTCONN:
                    return False
                if exc.errno in (errno.EINTR, errno.EAGAIN):
                    continue
                raise
            return True
    finally:
        os.close(fd)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reprobe the paths of a multipath device")
    parser.add_argument("device")
    args = parser.parse_args(argv)
    print("probing", flush=True)
    try:
        usable = probe_paths(args.device)
    except OSError as exc:
        print(f"ioctl on {args.device} failed: {exc}", file=sys.stderr)
        return 1
    if not usable:
        print("no usable paths", flush=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
