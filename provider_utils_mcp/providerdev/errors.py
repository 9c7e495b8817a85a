from __future__ import annotations


class DocumentLoadError(RuntimeError):
    pass


class OutputDirectoryError(RuntimeError):
    pass


class SplitError(RuntimeError):
    pass


class ManifestError(RuntimeError):
    pass
