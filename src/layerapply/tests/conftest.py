"""Layer and rootfs factory fixtures for layerapply tests.

Every layer fixture generates a real, crafted archive programmatically
using Python's ``tarfile`` module.  No mocks, no stubs.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

import bz2
import gzip
import io
import lzma
import os
import tarfile

import pytest

# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _tar_bytes(callback, *, mode: str = "w", format: int = tarfile.PAX_FORMAT) -> bytes:
    """Create a TAR archive in memory via *callback(tf)* and return bytes."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=mode, format=format) as tf:
        callback(tf)
    return buf.getvalue()


def _write_to_path(tmp_path, name: str, data: bytes) -> str:
    p = tmp_path / name
    p.write_bytes(data)
    return str(p)


def _add_regular(tf, name: str, content: bytes, **attrs) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(content)
    for key, value in attrs.items():
        setattr(info, key, value)
    tf.addfile(info, io.BytesIO(content))


def _add_dir(tf, name: str, **attrs) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.DIRTYPE
    info.mode = 0o755
    for key, value in attrs.items():
        setattr(info, key, value)
    tf.addfile(info)


def _add_marker(tf, name: str) -> None:
    _add_regular(tf, name, b"")


def _add_symlink(tf, name: str, target: str) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    tf.addfile(info)


def _add_hardlink(tf, name: str, target: str) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.LNKTYPE
    info.linkname = target
    tf.addfile(info)


def _add_device(tf, name: str, devtype: bytes) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = devtype
    info.devmajor = 1
    info.devminor = 3
    tf.addfile(info)


def _snapshot(root) -> dict[str, object]:
    """Map every path under *root* to a comparable description."""
    tree: dict[str, object] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            full = os.path.join(dirpath, name)
            rel = os.path.relpath(full, root)
            if os.path.islink(full):
                tree[rel] = ("link", os.readlink(full))
            elif os.path.isdir(full):
                tree[rel] = ("dir",)
            else:
                with open(full, "rb") as fh:
                    tree[rel] = ("file", fh.read())
    return tree


@pytest.fixture()
def snapshot():
    """Return a function that describes a directory tree for comparison."""
    return _snapshot


# ---------------------------------------------------------------------------
# rootfs
# ---------------------------------------------------------------------------


@pytest.fixture()
def rootfs(tmp_path):
    """A rootfs populated as if by earlier layers."""
    root = tmp_path / "rootfs"
    (root / "usr/share/doc/test").mkdir(parents=True)
    (root / "usr/share/doc/test/oldfile").write_bytes(b"old\n")
    (root / "usr/share/doc/test/keep").write_bytes(b"keep\n")
    (root / "etc").mkdir()
    (root / "etc/passwd").write_bytes(b"root:x:0:0:root:/root:/bin/sh\n")
    (root / "etc/shadow").write_bytes(b"root:*:19000:0:99999:7:::\n")
    (root / "foo").mkdir()
    (root / "foo/bar").write_bytes(b"old bar\n")
    (root / "opt/app/lib").mkdir(parents=True)
    (root / "opt/app/lib/libold.so").write_bytes(b"\x7fELF")
    (root / "opt/app/README").write_bytes(b"readme\n")
    return root


# ---------------------------------------------------------------------------
# marker layers
# ---------------------------------------------------------------------------


@pytest.fixture()
def whiteout_layer(tmp_path):
    """gzip layer deleting ``oldfile`` and adding ``newfile``."""

    def build(tf):
        _add_dir(tf, "usr/share/doc/test")
        _add_marker(tf, "usr/share/doc/test/.wh.oldfile")
        _add_regular(tf, "usr/share/doc/test/newfile", b"hello")

    return _write_to_path(tmp_path, "whiteout.tar.gz", gzip.compress(_tar_bytes(build)))


@pytest.fixture()
def opaque_layer(tmp_path):
    """Layer containing nothing but ``etc/.wh..wh..opq``."""

    def build(tf):
        _add_marker(tf, "etc/.wh..wh..opq")

    return _write_to_path(tmp_path, "opaque.tar", _tar_bytes(build))


@pytest.fixture()
def opaque_recreate_layer(tmp_path):
    """Layer that makes ``etc`` opaque and repopulates it."""

    def build(tf):
        _add_dir(tf, "etc")
        _add_marker(tf, "etc/.wh..wh..opq")
        _add_regular(tf, "etc/hostname", b"layer\n")

    return _write_to_path(tmp_path, "opaque_recreate.tar", _tar_bytes(build))


@pytest.fixture()
def late_opaque_layer(tmp_path):
    """Layer whose opaque marker comes after content of its directory."""

    def build(tf):
        _add_dir(tf, "etc")
        _add_regular(tf, "etc/hostname", b"layer\n")
        _add_marker(tf, "etc/.wh..wh..opq")

    return _write_to_path(tmp_path, "late_opaque.tar", _tar_bytes(build))


@pytest.fixture()
def root_opaque_layer(tmp_path):
    """Layer with an opaque marker at the archive root."""

    def build(tf):
        _add_marker(tf, "./.wh..wh..opq")
        _add_regular(tf, "./fresh.txt", b"fresh\n")

    return _write_to_path(tmp_path, "root_opaque.tar", _tar_bytes(build))


@pytest.fixture()
def recreate_layer(tmp_path):
    """Layer that whites out ``foo/bar`` and ships a new ``foo/bar``."""

    def build(tf):
        _add_marker(tf, "foo/.wh.bar")
        _add_regular(tf, "foo/bar", b"new bar\n")

    return _write_to_path(tmp_path, "recreate.tar", _tar_bytes(build))


@pytest.fixture()
def directory_whiteout_layer(tmp_path):
    """Layer deleting the whole ``opt/app`` directory."""

    def build(tf):
        _add_marker(tf, "./opt/.wh.app")

    return _write_to_path(tmp_path, "dir_whiteout.tar.bz2", bz2.compress(_tar_bytes(build)))


@pytest.fixture()
def missing_target_layer(tmp_path):
    """Layer whiting out paths that never existed."""

    def build(tf):
        _add_marker(tf, "nowhere/.wh.nothing")
        _add_marker(tf, "ghost/.wh..wh..opq")

    return _write_to_path(tmp_path, "missing_target.tar.xz", lzma.compress(_tar_bytes(build)))


@pytest.fixture()
def aufs_meta_layer(tmp_path):
    """Layer carrying AUFS bookkeeping entries."""

    def build(tf):
        _add_dir(tf, ".wh..wh.plnk")
        _add_regular(tf, ".wh..wh.plnk/262.1234", b"x")
        _add_dir(tf, "usr/.wh..wh.aufs")
        _add_regular(tf, "usr/visible.txt", b"visible\n")

    return _write_to_path(tmp_path, "aufs_meta.tar", _tar_bytes(build))


# ---------------------------------------------------------------------------
# unsafe layers
# ---------------------------------------------------------------------------


@pytest.fixture()
def traversal_whiteout_layer(tmp_path):
    """Whiteout marker pointing above the rootfs."""

    def build(tf):
        _add_marker(tf, "../.wh.victim")

    return _write_to_path(tmp_path, "traversal_whiteout.tar", _tar_bytes(build))


@pytest.fixture()
def absolute_whiteout_layer(tmp_path):
    """Whiteout marker with an absolute path."""

    def build(tf):
        _add_marker(tf, "/etc/.wh.passwd")

    return _write_to_path(tmp_path, "absolute_whiteout.tar", _tar_bytes(build))


@pytest.fixture()
def traversal_entry_layer(tmp_path):
    """Regular entry escaping the rootfs next to a legitimate one."""

    def build(tf):
        _add_regular(tf, "../../evil.txt", b"pwned")
        _add_regular(tf, "good.txt", b"good\n")

    return _write_to_path(tmp_path, "traversal_entry.tar", _tar_bytes(build))


@pytest.fixture()
def symlink_parent_layer(tmp_path):
    """Entry written through the ``escape`` symlink (see test setup)."""

    def build(tf):
        _add_regular(tf, "escape/evil.txt", b"pwned")

    return _write_to_path(tmp_path, "symlink_parent.tar", _tar_bytes(build))


# ---------------------------------------------------------------------------
# extraction layers
# ---------------------------------------------------------------------------


@pytest.fixture()
def special_files_layer(tmp_path):
    """Layer with devices and a FIFO among regular content."""

    def build(tf):
        _add_dir(tf, "dev")
        _add_device(tf, "dev/null", tarfile.CHRTYPE)
        _add_device(tf, "dev/sda", tarfile.BLKTYPE)
        info = tarfile.TarInfo(name="run/initctl")
        info.type = tarfile.FIFOTYPE
        tf.addfile(info)
        _add_regular(tf, "dev/README", b"devices\n")

    return _write_to_path(tmp_path, "special.tar", _tar_bytes(build))


@pytest.fixture()
def metadata_layer(tmp_path):
    """Layer exercising modes, mtimes, symlinks and hardlinks."""

    def build(tf):
        _add_dir(tf, "srv", mode=0o750, mtime=2_000_000)
        _add_regular(tf, "srv/data.txt", b"data\n", mode=0o640, mtime=1_000_000)
        _add_regular(tf, "srv/tool", b"#!/bin/sh\n", mode=0o4755, mtime=1_000_000)
        _add_symlink(tf, "srv/current", "data.txt")
        _add_symlink(tf, "srv/sh", "/bin/sh")
        _add_hardlink(tf, "srv/data.hard", "srv/data.txt")

    return _write_to_path(tmp_path, "metadata.tar", _tar_bytes(build))


@pytest.fixture()
def pax_metadata_layer(tmp_path):
    """Layer whose entry carries xattr, ACL and file-flag PAX headers."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tf:
        info = tarfile.TarInfo(name="flagged.txt")
        info.size = 3
        info.pax_headers = {
            "SCHILY.xattr.user.origin": "layer",
            "SCHILY.acl.access": "user::rw-,group::r--,other::r--",
            "SCHILY.fflags": "uchg",
        }
        tf.addfile(info, io.BytesIO(b"abc"))
    return _write_to_path(tmp_path, "pax_metadata.tar", buf.getvalue())


@pytest.fixture()
def missing_hardlink_layer(tmp_path):
    """Hardlink to a target that exists nowhere, then a regular file."""

    def build(tf):
        _add_hardlink(tf, "link.txt", "absent.txt")
        _add_regular(tf, "after.txt", b"after\n")

    return _write_to_path(tmp_path, "missing_hardlink.tar", _tar_bytes(build))


@pytest.fixture()
def replace_types_layer(tmp_path):
    """Layer replacing a directory with a file and a file with a directory."""

    def build(tf):
        _add_regular(tf, "opt/app", b"now a file\n")
        _add_dir(tf, "foo/bar")
        _add_regular(tf, "foo/bar/inner.txt", b"inner\n")

    return _write_to_path(tmp_path, "replace_types.tar", _tar_bytes(build))


LONG_NAME = "l" * 250


@pytest.fixture()
def long_name_layer(tmp_path):
    """Layer whose only file has a 250-byte base name."""

    def build(tf):
        _add_regular(tf, f"srv/{LONG_NAME}", b"long\n")

    return _write_to_path(tmp_path, "long_name.tar", _tar_bytes(build))


@pytest.fixture()
def extreme_mtime_layer(tmp_path):
    """Layer with timestamps before the epoch and past 2106."""

    def build(tf):
        _add_dir(tf, "old", mtime=-86_400)
        _add_regular(tf, "old/ancient.txt", b"1969\n", mtime=-86_400)
        _add_regular(tf, "future.txt", b"2128\n", mtime=5_000_000_000)

    return _write_to_path(tmp_path, "extreme_mtime.tar", _tar_bytes(build))


@pytest.fixture()
def nul_linkname_layer(tmp_path):
    """PAX symlink whose ``linkpath`` carries a NUL byte, then a good file."""

    def build(tf):
        info = tarfile.TarInfo(name="bin/broken")
        info.type = tarfile.SYMTYPE
        info.linkname = "a"
        info.pax_headers = {"linkpath": "a\x00b"}
        tf.addfile(info)
        _add_regular(tf, "bin/after.txt", b"after\n")

    return _write_to_path(tmp_path, "nul_linkname.tar", _tar_bytes(build))


# ---------------------------------------------------------------------------
# broken layers
# ---------------------------------------------------------------------------


@pytest.fixture()
def truncated_layer(tmp_path):
    """An uncompressed layer cut off in the middle of its only member."""

    def build(tf):
        _add_regular(tf, "zeros.bin", b"\x00" * 100_000)

    data = _tar_bytes(build, format=tarfile.USTAR_FORMAT)
    return _write_to_path(tmp_path, "truncated.tar", data[: 512 + 50_000])


@pytest.fixture()
def not_an_archive(tmp_path):
    """A file that is not a tar archive in any compression."""
    return _write_to_path(tmp_path, "garbage.tar", b"this is not a tar archive\n" * 40)
