"""Copy regular files by hard link or by content."""

from __future__ import annotations

import os
import shutil
import stat


def _check_paths(src: str, dst: str) -> bool:
    """Validate both paths; return True when they already name the same file."""
    sst = os.stat(src)
    if not stat.S_ISREG(sst.st_mode):
        raise OSError(
            f"CopyFile: non-regular source file {os.path.basename(src)} "
            f"({stat.filemode(sst.st_mode)!r})"
        )
    try:
        dst_stat = os.stat(dst)
    except FileNotFoundError:
        return False
    if not stat.S_ISREG(dst_stat.st_mode):
        raise OSError(
            f"CopyFile: non-regular destination file {os.path.basename(dst)} "
            f"({stat.filemode(dst_stat.st_mode)!r})"
        )
    return os.path.samestat(sst, dst_stat)


def _copy_contents(src: str, dst: str) -> None:
    with open(src, "rb") as fin, open(dst, "wb") as fout:
        shutil.copyfileobj(fin, fout)
        fout.flush()
        os.fsync(fout.fileno())


def copy_file(src: str, dst: str) -> None:
    """Copy ``src`` to ``dst``, preferring a hard link over copying bytes."""
    if _check_paths(src, dst):
        return
    try:
        os.link(src, dst)
    except OSError:
        _copy_contents(src, dst)


def copy_file_content(src: str, dst: str) -> None:
    """Copy the bytes of ``src`` into ``dst``, replacing what it held."""
    if _check_paths(src, dst):
        return
    _copy_contents(src, dst)