"""
fictrac_subject.errors

Foutklassen voor de FicTrac subject stack.

Parse failures are NOT exceptions: the field parser reports validity flags
and the caller drops the message. What remains here is startup and
configuration trouble.
"""


class FicTracSubjectError(Exception):
    """Base class for all errors raised by fictrac_subject."""


class MissingCollaboratorError(FicTracSubjectError):
    """A required collaborator (updater, message source, logger) is absent.

    Fatal at startup: the rig refuses to run with undefined motion.
    """


class PlaybackSourceMissing(FicTracSubjectError):
    """The log file requested for playback does not exist."""


class ProfileError(FicTracSubjectError, ValueError):
    """A rig profile holds values that cannot drive a session."""
