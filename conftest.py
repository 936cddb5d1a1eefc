# Root-level conftest: puts the repository root on sys.path so tests import
# `chat` and `common` without an install.
