"""Task modules live here.

Add modules next to `site.py` and decorate task functions with
`@flowbuild.task(name=..., after=[...])`; declare staged targets with
`flowbuild.sequence(...)` at module level.

Do not implement logic here unless it's shared helpers; keep tasks modular per file.
"""
