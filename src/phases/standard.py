# src/phases/standard.py — v1
"""Standard base phase sequences and their default phase functions.

Build systems:
  gnu:     unpack, patch, configure, build, check, install
  binary:  unpack, patch, install   (install copies the unpacked tree)
  copy:    unpack, install          (the install-plan selects files)
  trivial: build                    (no-op; recipes replace it)
"""

from __future__ import annotations

import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path

from recipekit.phases.actions import noop
from recipekit.phases.base import BasePhaseSequence, PhaseContext


def _is_within(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
        return True
    except ValueError:
        return False


def _check_member(name: str, link: str | None, workdir: Path) -> None:
    """Reject archive members escaping the extraction directory."""
    base = workdir.resolve()
    member = name.lstrip("/")
    if ".." in Path(member).parts:
        raise ValueError(f"Unsafe archive member (..): {name}")
    dest = (workdir / member).resolve()
    if not _is_within(dest, base):
        raise ValueError(f"Unsafe archive member (path traversal): {name}")
    if link is not None:
        if link.startswith("/"):
            raise ValueError(f"Unsafe archive link (absolute): {name} -> {link}")
        target = ((workdir / member).parent / link).resolve()
        if not _is_within(target, base):
            raise ValueError(f"Unsafe archive link (outside): {name} -> {link}")


def _extract_tar(archive: Path, workdir: Path) -> None:
    with tarfile.open(archive, "r:*") as tf:
        for m in tf.getmembers():
            link = m.linkname if (m.issym() or m.islnk()) else None
            _check_member(m.name, link, workdir)
        tf.extractall(workdir, filter="data")


def _extract_zip(archive: Path, workdir: Path) -> None:
    with zipfile.ZipFile(archive) as zf:
        for name in zf.namelist():
            _check_member(name, None, workdir)
        zf.extractall(workdir)


def _move_contents(src: Path, dest: Path) -> None:
    for entry in src.iterdir():
        shutil.move(str(entry), str(dest / entry.name))


def unpack(ctx: PhaseContext) -> None:
    """Unpack the fetched source into the source directory.

    Archives with a single top-level directory are flattened into it.
    Directories are copied; other files are copied as-is.
    """
    source = ctx.staging.fetched_source
    dest = ctx.source_dir
    if source is None:
        ctx.logger.info("No source to unpack")
        return

    if source.is_dir():
        shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
        git_dir = dest / ".git"
        if git_dir.is_dir():
            shutil.rmtree(git_dir)
        return

    if tarfile.is_tarfile(source):
        extract = _extract_tar
    elif zipfile.is_zipfile(source):
        extract = _extract_zip
    else:
        shutil.copy2(source, dest / source.name)
        return

    with tempfile.TemporaryDirectory(dir=ctx.staging.root, prefix="unpack-") as tmp:
        workdir = Path(tmp)
        extract(source, workdir)
        entries = list(workdir.iterdir())
        if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
            _move_contents(entries[0], dest)
        else:
            _move_contents(workdir, dest)
    ctx.logger.info("Unpacked %s", source.name)


def patch(ctx: PhaseContext) -> None:
    """Apply the recipe's patches with ``patch -p1``."""
    flags = list(ctx.arguments.get("patch_flags", ["-p1"]))
    for patch_file in ctx.recipe.patches:
        ctx.logger.info("Applying patch %s", Path(patch_file).name)
        ctx.run(["patch", "--batch", "--forward", *flags, "-i", str(Path(patch_file).resolve())])


def configure(ctx: PhaseContext) -> None:
    script = ctx.source_dir / "configure"
    if not script.exists():
        ctx.logger.info("No configure script, skipping")
        return
    flags = list(ctx.arguments.get("configure_flags", []))
    ctx.run(["sh", "./configure", f"--prefix={ctx.out}", *flags])


def _make_flags(ctx: PhaseContext) -> list[str]:
    flags = ctx.settings.make_flags_list if ctx.settings is not None else []
    return flags + list(ctx.arguments.get("make_flags", []))


def _has_makefile(ctx: PhaseContext) -> bool:
    return any(
        (ctx.source_dir / name).exists()
        for name in ("Makefile", "makefile", "GNUmakefile")
    )


def build(ctx: PhaseContext) -> None:
    if not _has_makefile(ctx):
        ctx.logger.info("No Makefile, skipping")
        return
    ctx.run(["make", *_make_flags(ctx)])


def check(ctx: PhaseContext) -> None:
    default = ctx.settings.run_tests if ctx.settings is not None else True
    if not ctx.arguments.get("tests", default):
        ctx.logger.info("Tests disabled")
        return
    if not _has_makefile(ctx):
        ctx.logger.info("No Makefile, skipping tests")
        return
    ctx.run(["make", ctx.arguments.get("test_target", "check"), *_make_flags(ctx)])


def install(ctx: PhaseContext) -> None:
    if not _has_makefile(ctx):
        ctx.logger.info("No Makefile, skipping install")
        return
    ctx.run(["make", "install", f"prefix={ctx.out}", *_make_flags(ctx)])


def install_unpacked(ctx: PhaseContext) -> None:
    """Copy the whole unpacked tree into the install prefix."""
    shutil.copytree(ctx.source_dir, ctx.out, symlinks=True, dirs_exist_ok=True)


def standard_build_systems() -> dict[str, BasePhaseSequence]:
    """Return the default catalog of base phase sequences by name."""
    return {
        "gnu": BasePhaseSequence.of(
            "gnu",
            [
                ("unpack", unpack),
                ("patch", patch),
                ("configure", configure),
                ("build", build),
                ("check", check),
                ("install", install),
            ],
        ),
        "binary": BasePhaseSequence.of(
            "binary",
            [("unpack", unpack), ("patch", patch), ("install", install_unpacked)],
        ),
        "copy": BasePhaseSequence.of(
            "copy", [("unpack", unpack), ("install", noop)]
        ),
        "trivial": BasePhaseSequence.of("trivial", [("build", noop)]),
    }
