"""scaffold-forge scaffolder -- decodes and writes generated project trees.

A generated scaffold document is decoded with the marker protocol and written
under an output root whose previous contents (except ``.git``) are removed.

Quick usage::

    from scaffold_forge.scaffolder import TreeMaterializer, parse_scaffold

    blocks = parse_scaffold(document)
    await TreeMaterializer("/tmp/output").materialize(blocks)
"""

from scaffold_forge.scaffolder.materializer import TreeMaterializer
from scaffold_forge.scaffolder.protocol import FileBlock, parse_scaffold
from scaffold_forge.scaffolder.templates import TemplateRenderer

__all__ = [
    "FileBlock",
    "TemplateRenderer",
    "TreeMaterializer",
    "parse_scaffold",
]
