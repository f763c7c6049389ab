"""Single-shot acceptance checks."""

from .file_retrieval import FileRetrievalCheck  # noqa: F401
