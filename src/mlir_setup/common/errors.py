from __future__ import annotations


class MlirSetupError(Exception):
    """Base class for every failure surfaced to a caller."""


class InvalidPlatform(MlirSetupError, ValueError):
    pass


class InvalidArchitecture(MlirSetupError, ValueError):
    pass


class InvalidVersionFormat(MlirSetupError, ValueError):
    pass


class UnsupportedVariant(MlirSetupError, ValueError):
    pass


class UnsupportedHost(MlirSetupError, RuntimeError):
    pass


class UnparseableAssetName(MlirSetupError, ValueError):
    pass


class UnparseableAssetVersion(MlirSetupError, ValueError):
    pass


class InvalidReleaseTag(MlirSetupError, ValueError):
    pass


class ManifestFormatError(MlirSetupError, ValueError):
    pass


class ManifestUnavailable(MlirSetupError, RuntimeError):
    pass


class NoArchiveFound(MlirSetupError, RuntimeError):
    pass


class NoCompanionFound(MlirSetupError, RuntimeError):
    pass


class SourceUnavailable(MlirSetupError, RuntimeError):
    pass


class UntrustedUrl(MlirSetupError, ValueError):
    pass


class UnsafeArchive(MlirSetupError, ValueError):
    pass


class ExtractionFailed(MlirSetupError, RuntimeError):
    pass


class ReleaseNotFound(SourceUnavailable):
    pass


class PrefixNotManaged(MlirSetupError, ValueError):
    pass
