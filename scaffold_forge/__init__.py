"""scaffold-forge: prompt-to-repository scaffold generation.

Turns a natural-language prompt into a generated project scaffold (or a
standalone specification document), materialises it on disk, commits and
pushes it to a git remote, and registers scaffolds in a service catalog.

Usage::

    python -m scaffold_forge.pipeline "inventory service with REST API" --agent scaffold
    python -m scaffold_forge.server
"""
