"""Update workflow errors.

Every component raises one of these; ``UpdateChecker`` turns them into a
``{success: false, message}`` result.
"""


class UpdateError(RuntimeError):
    """Base class for update/install failures."""


class InvalidVersionError(UpdateError):
    """Sentinel or malformed version string ("unknown", "Network error")."""


class NetworkFailureError(UpdateError):
    """No release source could be reached."""


class NotFoundError(UpdateError):
    """Artifact path or release does not exist."""


class UnreachableError(UpdateError):
    """Every candidate download URL failed, or there is nowhere to save it."""


class TooSmallError(UpdateError):
    """Downloaded artifact is implausibly small."""


class ExtractFailedError(UpdateError):
    """Archive could not be unpacked or did not yield the binary."""


class VerifyFailedError(UpdateError):
    """Post-install self-test failed. Logged as a warning, never fatal."""
