"""Write decoded file trees to disk.

``TreeMaterializer`` owns one output root.  A scaffold run first sweeps the
root clean (keeping ``.git``), then writes every block with create-new
semantics: an existing target is a fatal ``FileAlreadyExists`` for the whole
batch, never an overwrite.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from pathlib import Path

from scaffold_forge.errors import FileAlreadyExists, MaterializationError
from scaffold_forge.scaffolder.protocol import FileBlock
from scaffold_forge.utils import console

VCS_METADATA_DIR = ".git"


def _removal_order(directory: Path, *, top: bool = True) -> Iterator[Path]:
    """Yield every entry under *directory* children-first.

    The top-level ``.git`` directory is skipped entirely.  Symlinked
    directories are yielded as entries, not descended into.
    """
    for entry in sorted(directory.iterdir()):
        if top and entry.name == VCS_METADATA_DIR:
            continue
        if entry.is_dir() and not entry.is_symlink():
            yield from _removal_order(entry, top=False)
        yield entry


class TreeMaterializer:
    """Replaces the contents of an output root with a decoded file tree."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    # -- Delete sweep ------------------------------------------------------

    def _clear_sync(self) -> int:
        if not self.root.exists():
            self.root.mkdir(parents=True, exist_ok=True)
            return 0

        removed = 0
        for entry in _removal_order(self.root):
            try:
                if entry.is_dir() and not entry.is_symlink():
                    entry.rmdir()
                else:
                    entry.unlink()
            except OSError as exc:
                raise MaterializationError(f"Failed to delete: {entry}: {exc}") from exc
            removed += 1
        return removed

    async def clear(self) -> int:
        """Remove everything under the root except the root and ``.git``.

        A missing root is created.  Returns the number of entries removed.
        """
        removed = await asyncio.to_thread(self._clear_sync)
        console.print(
            f"  [yellow]Cleared[/yellow] {removed} entr{'y' if removed == 1 else 'ies'} "
            f"under [bold]{self.root}[/bold] (kept {VCS_METADATA_DIR})"
        )
        return removed

    # -- Writes ------------------------------------------------------------

    def _resolve_target(self, relative_path: str, file_name: str) -> Path:
        root = self.root.resolve()
        # Leading slashes are treated as root-relative.
        target = (root / relative_path.strip().lstrip("/") / file_name.strip()).resolve()
        if root not in target.parents:
            raise MaterializationError(
                f"Refusing to write outside the output root: {relative_path}{file_name}"
            )
        return target

    def _write_sync(self, relative_path: str, file_name: str, content: str) -> Path:
        target = self._resolve_target(relative_path, file_name)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("x", encoding="utf-8", newline="") as handle:
                handle.write(content)
        except FileExistsError as exc:
            raise FileAlreadyExists(str(target)) from exc
        except OSError as exc:
            raise MaterializationError(f"Failed to write {target}: {exc}") from exc
        return target

    async def write_file(self, relative_path: str, file_name: str, content: str) -> Path:
        """Create ``root/relative_path/file_name`` with *content*.

        Raises:
            FileAlreadyExists: If the target file is already present.
            MaterializationError: On any other I/O failure, or when the target
                would land outside the root.
        """
        return await asyncio.to_thread(self._write_sync, relative_path, file_name, content)

    async def write_blocks(self, blocks: list[FileBlock]) -> list[Path]:
        """Write *blocks* in order, stopping at the first failure."""
        written: list[Path] = []
        for block in blocks:
            written.append(
                await self.write_file(block.relative_path, block.file_name, block.content)
            )
        return written

    async def materialize(self, blocks: list[FileBlock]) -> list[Path]:
        """Sweep the root clean, then write *blocks*."""
        await self.clear()
        written = await self.write_blocks(blocks)
        console.print(
            f"  [green]+[/green] Wrote {len(written)} file(s) under [bold]{self.root}[/bold]"
        )
        return written
