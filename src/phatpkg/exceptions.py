class BuildError(Exception):
    category = "BuildError"


class ConfigError(BuildError):
    category = "ConfigError"


class InputError(BuildError):
    pass


class MissingInputError(InputError):
    category = "MissingInput"


class InputTypeMismatchError(InputError):
    category = "InputTypeMismatch"


class UnsupportedInputTypeError(InputError):
    category = "UnsupportedInputType"


class InvalidURLError(InputError):
    category = "InvalidURL"


class ResolutionError(BuildError):
    pass


class DownloadFailedError(ResolutionError):
    category = "DownloadFailed"


class ExtractionFailedError(ResolutionError):
    category = "ExtractionFailed"


class BundleNotFoundError(ResolutionError):
    category = "BundleNotFound"


class ManifestUnreadableError(ResolutionError):
    category = "ManifestUnreadable"


class ValidationError(BuildError):
    pass


class ArchitectureMismatchError(ValidationError):
    category = "ArchitectureMismatch"


class VersionMismatchError(ValidationError):
    category = "VersionMismatch"


class BundleIdMismatchError(ValidationError):
    category = "BundleIdMismatch"


class PackageCreationFailedError(BuildError):
    category = "PackageCreationFailed"
